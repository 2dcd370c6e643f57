#!/usr/bin/env python
"""
Command line entry point for the outpatient backend.

Besides Django's own commands it runs ``seed_hospital``,
``ensure_test_users`` and ``refresh_caches``.
"""
import os
import sys


def main() -> None:
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'hospital.settings')
    try:
        from django.core.management import execute_from_command_line  # type: ignore
    except ImportError as exc:
        raise ImportError(
            "Django is not installed; install the project with `pip install -e .` first."
        ) from exc
    execute_from_command_line(sys.argv)


if __name__ == '__main__':
    main()
