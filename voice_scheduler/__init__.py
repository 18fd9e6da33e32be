"""Voice Scheduler - turn spoken input into schedules, diary entries and memos."""

__version__ = "1.0.0"
