#!/usr/bin/env python
"""
Minimal setup.py bridge for tooling that still invokes setup.py directly
(older pip versions doing legacy editable installs).
"""

from setuptools import setup

# All metadata lives in pyproject.toml
setup()
