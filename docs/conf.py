# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Sphinx configuration for genro-dbclient documentation."""

import os
import sys

# autodoc imports genro_dbclient from the src layout
sys.path.insert(0, os.path.abspath("../src"))

project = "genro-dbclient"
copyright = "2025, Softwell S.r.l."
author = "Genropy Team"
release = "0.1.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.intersphinx",
    "sphinx_autodoc_typehints",
    "myst_parser",
]

# Google-style docstrings only
napoleon_google_docstring = True
napoleon_numpy_docstring = False

autodoc_default_options = {
    "members": True,
    "member-order": "bysource",
}
autodoc_typehints = "description"
# Driver packages are optional extras
autodoc_mock_imports = ["psycopg", "psycopg_pool", "pymysql", "pyodbc"]

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "psycopg": ("https://www.psycopg.org/psycopg3/docs", None),
    "pydantic": ("https://docs.pydantic.dev/latest", None),
}

html_theme = "furo"
html_title = "genro-dbclient"

source_suffix = {".md": "markdown"}
master_doc = "index"
exclude_patterns = ["_build"]
