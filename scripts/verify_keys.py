#!/usr/bin/env python3
"""
Verify every Gemini API key in the shared (Redis) key pool and store the result.
Keys given as arguments are added to the pool first.
Run from the project root: python -m scripts.verify_keys [KEY ...]
or: PYTHONPATH=. python scripts/verify_keys.py [KEY ...]
"""
import os
import sys

# project root on PYTHONPATH
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tryon.core.logging import configure_logging, mask_key
from tryon.services.image_generation import verify_all_keys
from tryon.services.key_pool import KeyPool, RedisKeyPoolStore


def main(argv: list[str]) -> int:
    configure_logging()
    pool = KeyPool(RedisKeyPoolStore("gemini"), name="gemini")
    for key in argv:
        if not pool.add(key):
            print(f"skipped (empty or already in pool): {mask_key(key)}")
    if not len(pool):
        print("Key pool is empty.")
        return 1
    outcome = verify_all_keys(pool)
    for value, status in outcome.items():
        print(f"  {mask_key(value)}: {status.value}")
    return 0 if any(s.value == "valid" for s in outcome.values()) else 1


if __name__ == "__main__":
    sys.exit(main(sys.argv[1:]))
