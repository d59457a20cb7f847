"""Source-location scanning.

Locates references to a package inside a project and categorizes them:
- context: path-based file classification and usage aggregation
- javascript: tree-sitter scanner for JavaScript and TypeScript
- python: tree-sitter scanner for Python
- config_files: literal package-name search in configuration files
"""

from renovate_safety.scanning.config_files import distribution_name_pattern, grep_config_files
from renovate_safety.scanning.context import (
    categorize_usages,
    classify_file_context,
    is_critical_path,
    is_package_import,
)
from renovate_safety.scanning.files import ProjectFiles
from renovate_safety.scanning.javascript import JavaScriptUsageScanner
from renovate_safety.scanning.python import PythonUsageScanner, import_names_for

__all__ = [
    "JavaScriptUsageScanner",
    "ProjectFiles",
    "PythonUsageScanner",
    "categorize_usages",
    "classify_file_context",
    "distribution_name_pattern",
    "grep_config_files",
    "import_names_for",
    "is_critical_path",
    "is_package_import",
]
