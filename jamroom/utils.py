"""
Utility functions for client id and room code generation
"""
import random
import string
import uuid

ROOM_CODE_ALPHABET = string.ascii_uppercase
ROOM_CODE_LENGTH = 4


def generate_client_id() -> str:
    """Generate an opaque unique client ID"""
    return str(uuid.uuid4())


def generate_room_code(length: int = ROOM_CODE_LENGTH) -> str:
    """Generate a random room code (uppercase letters, may collide)"""
    return "".join(random.choice(ROOM_CODE_ALPHABET) for _ in range(length))


def normalize_room_code(code: str) -> str:
    return code.upper()
