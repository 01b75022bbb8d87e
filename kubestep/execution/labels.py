"""
Kubernetes label validation.

A label key is an optional DNS-style prefix and a name separated by "/".
The prefix is at most 253 characters, the name at most 63 characters, starting
and ending with an alphanumeric character with "-", "_" or "." allowed in
between. The value follows the name rules but may also be empty.

See https://kubernetes.io/docs/concepts/overview/working-with-objects/labels/#syntax-and-character-set
"""

import re
from typing import Dict, Optional

from kubestep.core.constants import LABELS
from kubestep.core.exceptions import ConfigurationError

KEY_PREFIX_SEPARATOR = "/"
MAX_PREFIX_LENGTH = 253
MAX_NAME_LENGTH = 63

_NAME_PATTERN = re.compile(r"[a-zA-Z0-9]([-_.a-zA-Z0-9]*[a-zA-Z0-9])?")
_PREFIX_PATTERN = re.compile(r"[a-zA-Z0-9]+(\.[a-zA-Z0-9]+)*")


def _is_valid_name(name: str) -> bool:
    return len(name) <= MAX_NAME_LENGTH and bool(_NAME_PATTERN.fullmatch(name))


def _is_valid_prefix(prefix: str) -> bool:
    return len(prefix) <= MAX_PREFIX_LENGTH and bool(_PREFIX_PATTERN.fullmatch(prefix))


def _is_valid_value(value: str) -> bool:
    return value == "" or _is_valid_name(value)


def _is_valid_key(key: str) -> bool:
    if key.startswith(KEY_PREFIX_SEPARATOR) or key.endswith(KEY_PREFIX_SEPARATOR):
        return False

    parts = key.split(KEY_PREFIX_SEPARATOR)
    if len(parts) == 1:
        return _is_valid_name(parts[0])
    if len(parts) == 2:
        return _is_valid_prefix(parts[0]) and _is_valid_name(parts[1])
    return False


def validate_label(separator: Optional[str], key_value: Optional[str]) -> bool:
    """
    Validate a single label against the Kubernetes label syntax.

    Args:
        separator: String separating the key from the value, usually "=".
            There is no check that it can't also appear inside keys or values.
        key_value: The label, e.g. "app.kubernetes.io/name=worker" or "tier="

    Returns:
        True if the label is valid, False otherwise
    """
    if not separator:
        return False

    # The shortest valid label is a one character key and the separator
    if key_value is None or len(key_value) < 2:
        return False

    # A label may end with the separator (empty value) but never start with it
    if key_value.startswith(separator) or separator not in key_value:
        return False

    key, _, value = key_value.partition(separator)
    if separator in value:
        return False

    return _is_valid_key(key) and _is_valid_value(value)


def validate_and_get_labels(
    kv_separator: str, label_separator: str, labels: str
) -> Dict[str, str]:
    """
    Split a label string and validate every label in it.

    All labels must validate, otherwise nothing is returned.

    Args:
        kv_separator: String splitting a label into key and value
        label_separator: String splitting the label string into labels
        labels: The label string, e.g. "foo=bar tier="

    Returns:
        Mapping of label keys to values

    Raises:
        ConfigurationError: If any label is invalid or a key is repeated
    """
    unvalidated = labels.split(label_separator)
    if not all(validate_label(kv_separator, label) for label in unvalidated):
        raise ConfigurationError(LABELS, f'Invalid label contained in "{labels}"')

    result: Dict[str, str] = {}
    for label in unvalidated:
        key, _, value = label.partition(kv_separator)
        if key in result:
            raise ConfigurationError(
                LABELS, f'Duplicate label key "{key}" in "{labels}"'
            )
        result[key] = value
    return result
