#!/usr/bin/env python3
"""
Pipelines RBAC Reconciler.

Minimal entry script; argument parsing and the control loop live in
pipelines_rbac.libs.main_app.
"""

import sys

from pipelines_rbac.libs.main_app import main


if __name__ == "__main__":
    sys.exit(main())
