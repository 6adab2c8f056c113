import random
from hashlib import sha256


def sha(content: str) -> str:
    return sha256(content.encode()).hexdigest()


def generate_password(charset: str, length: int) -> str:
    assert charset, "The character set must not be empty."
    rand_gen = random.SystemRandom()
    return "".join(rand_gen.choice(charset) for _ in range(length))
