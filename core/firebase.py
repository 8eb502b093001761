import json
import logging
import os

import firebase_admin
from firebase_admin import auth as firebase_auth, credentials, firestore

logger = logging.getLogger(__name__)

_app = None


def initialize_firebase():
    """Initialize the Firebase Admin SDK once, on first use."""
    global _app
    if _app is not None:
        return _app

    # Method 1: Service Account Key from Environment Variable (Recommended for production)
    service_account_key_json = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY")
    if service_account_key_json:
        try:
            cred = credentials.Certificate(json.loads(service_account_key_json))
            _app = firebase_admin.initialize_app(cred)
            logger.info("Firebase Admin SDK initialized with Service Account Key from environment variable.")
            return _app
        except ValueError as e:
            logger.error(f"Error parsing FIREBASE_SERVICE_ACCOUNT_KEY: {e}")

    # Method 2: Service Account Key File (for local development only)
    service_account_key_path = os.getenv("FIREBASE_SERVICE_ACCOUNT_KEY_PATH")
    if service_account_key_path and os.path.exists(service_account_key_path):
        _app = firebase_admin.initialize_app(credentials.Certificate(service_account_key_path))
        logger.info("Firebase Admin SDK initialized with Service Account Key from file path.")
        return _app

    # Method 3: GOOGLE_APPLICATION_CREDENTIALS / Application Default Credentials
    _app = firebase_admin.initialize_app()
    logger.info("Firebase Admin SDK initialized with Application Default Credentials.")
    return _app


def verify_id_token(token: str) -> dict:
    initialize_firebase()
    return firebase_auth.verify_id_token(token)


def get_user_profile(uid: str) -> dict | None:
    """Firestore `users/{uid}` document, or None when it does not exist."""
    initialize_firebase()
    snapshot = firestore.client().collection("users").document(uid).get()
    if not snapshot.exists:
        return None
    return snapshot.to_dict()
