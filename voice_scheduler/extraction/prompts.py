"""Instruction templates describing the JSON shape for each record kind."""

from ..models import RecordKind

SCHEDULE_PROMPT = """당신은 한국어 음성을 일정 데이터로 변환하는 AI입니다.
사용자의 음성을 분석하여 다음 JSON 형식으로 반환해주세요:

{
  "processed": {
    "title": "일정 제목",
    "date": "YYYY-MM-DD",
    "time": "HH:MM",
    "location": "장소 (없으면 null)",
    "category": "업무|개인|약속|기타",
    "description": "세부 내용 (없으면 null)",
    "priority": "높음|보통|낮음"
  },
  "originalText": "원본 음성 텍스트"
}

날짜나 시간이 명시되지 않은 경우 적절히 추정해주세요.
오늘 날짜는 {today} 입니다. JSON 외의 텍스트는 출력하지 마세요."""

DIARY_PROMPT = """당신은 한국어 음성을 일기 데이터로 변환하는 AI입니다.
사용자의 음성을 분석하여 다음 JSON 형식으로 반환해주세요:

{
  "processed": {
    "title": "일기 제목 (자동 생성)",
    "content": "정리된 일기 내용",
    "mood": "기쁨|보통|슬픔|화남|기타",
    "tags": ["태그1", "태그2"],
    "date": "YYYY-MM-DD"
  },
  "originalText": "원본 음성 텍스트"
}

오늘 날짜는 {today} 입니다. JSON 외의 텍스트는 출력하지 마세요."""

MEMO_PROMPT = """당신은 한국어 음성을 메모 데이터로 변환하는 AI입니다.
사용자의 음성을 분석하여 다음 JSON 형식으로 반환해주세요:

{
  "processed": {
    "title": "메모 제목 (자동 생성)",
    "content": "정리된 메모 내용",
    "category": "아이디어|할일|쇼핑|기타",
    "tags": ["태그1", "태그2"],
    "priority": "높음|보통|낮음"
  },
  "originalText": "원본 음성 텍스트"
}

JSON 외의 텍스트는 출력하지 마세요."""

SYSTEM_PROMPTS = {
    RecordKind.SCHEDULE: SCHEDULE_PROMPT,
    RecordKind.DIARY: DIARY_PROMPT,
    RecordKind.MEMO: MEMO_PROMPT,
}

# Titles used when the model reply could not be parsed.
FALLBACK_TITLES = {
    RecordKind.SCHEDULE: "음성 일정",
    RecordKind.DIARY: "음성 일기",
    RecordKind.MEMO: "음성 메모",
}

FALLBACK_NOTE = "GPT 응답을 JSON으로 파싱할 수 없어 기본 형식으로 저장됨"


def system_prompt(kind: RecordKind, today: str) -> str:
    """Instruction text for ``kind`` with today's date filled in."""
    # str.format would trip over the JSON braces
    return SYSTEM_PROMPTS[kind].replace("{today}", today)
