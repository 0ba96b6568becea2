"""Sphinx configuration for Address Book API documentation."""

import os
import sys
from datetime import datetime

sys.path.insert(0, os.path.abspath(".."))

project = "Address Book API"
current_year = datetime.now().year
copyright = f"{current_year}, Address Book"
author = "Address Book Team"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
]

templates_path = ["_templates"]
exclude_patterns: list[str] = []

html_theme = "alabaster"

html_static_path = ["_static"]
