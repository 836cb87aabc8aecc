# Sphinx configuration for the s3vfs API reference.
import os
import sys
sys.path.insert(0, os.path.abspath('../..'))
import sphinx_rtd_theme  # noqa: F401

# -- Project -----------------------------------------------------------------
project = 's3vfs'
copyright = '2025, Accelerated Cloud Storage'
author = 'Accelerated Cloud Storage'
release = '0.1.0'

# -- Build -------------------------------------------------------------------
extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.intersphinx',
]

intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'boto3': ('https://boto3.amazonaws.com/v1/documentation/api/latest', None),
}

autodoc_default_options = {
    'members': True,
    'undoc-members': True,
    'exclude-members': 'MULTIPART_THRESHOLD, DEFAULT_MAX_ERROR_RETRY, BLOCK_SIZE',
}
autodoc_member_order = 'bysource'

# fusepy loads libfuse at import time
autodoc_mock_imports = ['fuse']

templates_path = ['_templates']
exclude_patterns = []

# -- HTML --------------------------------------------------------------------
html_theme = 'sphinx_rtd_theme'
html_static_path = ['_static']
