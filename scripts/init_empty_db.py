#!/usr/bin/env python3
"""Create an empty SQLite database with the report schema (no dummy data)."""

import argparse

from reportops.config import default_db_path, load_env
from reportops.log import configure_logging
from reportops.schema import init_db


if __name__ == "__main__":
    load_env()
    parser = argparse.ArgumentParser()
    parser.add_argument("--sqlite-path", default=default_db_path())
    args = parser.parse_args()
    configure_logging()
    init_db(args.sqlite_path)
    print(f"Empty database created at {args.sqlite_path}")
