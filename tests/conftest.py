"""
Shared test configuration.

Adds both the project root and src/ to sys.path so that flat modules
(pattern_engine, records, engine_config, api, ...) and the analytics /
pipeline / routes packages import with plain `import module_name`.
"""

import os
import sys

_project_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
_src_dir = os.path.join(_project_root, "src")

if _project_root not in sys.path:
    sys.path.insert(0, _project_root)

# src/ second: lets `import pattern_engine` etc. work for flat modules
if _src_dir not in sys.path:
    sys.path.insert(1, _src_dir)
