from typing import Any, Collection, Dict, List, Mapping, Optional

# ids are stored in signed INT columns
MIN_ID = 1
MAX_ID = 2 ** 31 - 1


class ValidationError(ValueError):
    """Raised when a selector request field is malformed."""

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field
        self.message = message


def _coerce_id(v: Any) -> Optional[int]:
    # bool is an int subclass but never a valid id
    if isinstance(v, bool):
        return None
    if isinstance(v, int):
        return v
    if isinstance(v, str):
        s = v.strip()
        if s.isdecimal() and s.isascii():
            digits = s.lstrip("0") or "0"
            # out of range anyway; int() refuses very long digit strings
            if len(digits) > len(str(MAX_ID)):
                return MAX_ID + 1
            return int(digits)
    return None


def _check_field(name: str, value: Any, names: Collection[str]) -> Optional[str]:
    if name not in names:
        return f"Unknown entity type: '{name}'"
    id_ = _coerce_id(value)
    if id_ is None:
        return f"Field '{name}' must be an integer id"
    if id_ < MIN_ID or id_ > MAX_ID:
        return f"Field '{name}' must be between {MIN_ID} and {MAX_ID}"
    return None


def validate_selector(data: Any, names: Collection[str]) -> List[str]:
    """
    Returns a list of validation error messages. Empty list means valid.

    `names` are the entity type names the request may refer to.
    """
    if not isinstance(data, Mapping):
        return ["Selector request must be a mapping of entity type to id"]

    errors: List[str] = []
    for name in sorted(data, key=str):
        error = _check_field(name, data[name], names)
        if error:
            errors.append(error)
    return errors


def parse_selector(data: Any, names: Collection[str]) -> Dict[str, int]:
    """
    Validate and coerce a selector request.

    Args:
        data: Mapping of entity type name to id (int or decimal string)
        names: Registered entity type names

    Returns:
        Mapping of entity type name to integer id

    Raises:
        ValidationError: For the first offending field, in sorted field order
    """
    if not isinstance(data, Mapping):
        raise ValidationError("", "Selector request must be a mapping of entity type to id")

    request: Dict[str, int] = {}
    for name in sorted(data, key=str):
        error = _check_field(name, data[name], names)
        if error:
            raise ValidationError(str(name), error)
        request[name] = _coerce_id(data[name])
    return request
