"""Mint a teacher bearer token for local testing.

Usage: python scripts/issue_token.py <teacher_id>
"""
from __future__ import annotations

import argparse

from lara.auth import teacher_token


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("teacher_id")
    args = parser.parse_args()
    print(teacher_token(args.teacher_id))


if __name__ == "__main__":
    main()
