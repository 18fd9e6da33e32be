"""Firebase Admin app initialization shared by the Firestore store and token verification."""

import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials

logger = logging.getLogger(__name__)


def get_firebase_app(
    project_id: Optional[str] = None,
    credentials_path: Optional[str] = None,
) -> firebase_admin.App:
    """Return the default Firebase app, initializing it on first call.

    Without a credentials file, Application Default Credentials are used.
    """
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    if credentials_path:
        cred = credentials.Certificate(credentials_path)
    else:
        cred = credentials.ApplicationDefault()

    options = {"projectId": project_id} if project_id else None
    logger.info(f"Initializing Firebase app (project: {project_id or 'default'})")
    return firebase_admin.initialize_app(cred, options)
