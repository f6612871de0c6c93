import os
from typing import Any, Optional

import firebase_admin
from firebase_admin import credentials, firestore, storage

from app.config import (
    FIREBASE_CREDENTIALS_PATH,
    FIREBASE_PROJECT_ID,
    FIREBASE_STORAGE_BUCKET,
    PROJECT_ROOT,
    logger,
)

_firebase_app: Optional[firebase_admin.App] = None
_db: Optional[Any] = None


def _resolve_credentials_path(credentials_path: str) -> str:
    if os.path.isabs(credentials_path):
        return credentials_path

    possible_paths = [
        os.path.join(str(PROJECT_ROOT), credentials_path),  # repo root (dev volume mount)
        os.path.join(str(PROJECT_ROOT), os.path.basename(credentials_path)),
        credentials_path,  # current working directory
    ]
    for path in possible_paths:
        if os.path.exists(path):
            logger.debug("Found Firebase credentials at: %s", path)
            return os.path.abspath(path)

    raise FileNotFoundError(
        f"Firebase credentials file not found. Tried: {', '.join(possible_paths)}. "
        f"Set FIREBASE_CREDENTIALS_PATH to an absolute path or ensure the file exists."
    )


def _init_firebase() -> None:
    global _firebase_app, _db
    if _firebase_app is not None and _db is not None:
        return
    if not FIREBASE_PROJECT_ID:
        raise RuntimeError("FIREBASE_PROJECT_ID must be configured")

    options = {"projectId": FIREBASE_PROJECT_ID}
    if FIREBASE_STORAGE_BUCKET:
        options["storageBucket"] = FIREBASE_STORAGE_BUCKET

    if FIREBASE_CREDENTIALS_PATH:
        cred = credentials.Certificate(_resolve_credentials_path(FIREBASE_CREDENTIALS_PATH))
    else:
        # Cloud Run / Functions: use the runtime service account
        cred = credentials.ApplicationDefault()

    _firebase_app = firebase_admin.initialize_app(cred, options)
    _db = firestore.client()
    logger.info(
        "Firebase initialized for project %s (bucket=%s)",
        FIREBASE_PROJECT_ID,
        FIREBASE_STORAGE_BUCKET or "<default>",
    )


def get_firestore_client():
    if _db is None:
        _init_firebase()
    assert _db is not None
    return _db


def get_storage_bucket(name: Optional[str] = None):
    """Return the google.cloud.storage Bucket for the Firebase project."""
    _init_firebase()
    return storage.bucket(name)
