import random
import string
import time

_BASE36 = string.digits + string.ascii_lowercase


def random_suffix(length: int = 6) -> str:
    return "".join(random.choices(_BASE36, k=length))


def timestamped_id(prefix: str) -> str:
    """``{prefix}-{epoch ms}-{6 base36 chars}``, e.g. ``chat-1717171717171-k3j9x0``."""
    return f"{prefix}-{int(time.time() * 1000)}-{random_suffix()}"
