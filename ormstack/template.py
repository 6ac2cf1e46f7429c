"""Token substitution in user-supplied SQL skeletons.

Recognized tokens:

- ``$ModelName``, ``$Columns``, ``$Values``, ``$Conditions``: replaced by the
  matching fragment (text and arguments);
- ``$FN-<FieldName>``: the column name of that field of the model;
- ``$0x<hex>``: the column name of the field at that position in the model.

Example::

    render_template(
        "UPDATE $ModelName SET $FN-Age = $FN-Age + 1 $Conditions",
        {"ModelName": ExecValue(sql='"user"'), "Conditions": where},
        model=user_model,
    )

Substitution is a single left-to-right pass: the text of a substituted
fragment is never scanned again, and arguments are concatenated in the order
their tokens appear.
"""

import re
from typing import Optional, TYPE_CHECKING

from .exceptions import UnknownPlaceholder
from .exec_value import ExecValue

if TYPE_CHECKING:
    from .model import Model

FRAGMENT_TOKENS = ("ModelName", "Columns", "Values", "Conditions")

_TOKEN = re.compile(r"\$(FN-[A-Za-z_]\w*|0x[0-9A-Fa-f]*|[A-Za-z_]\w*)")


def _field_column(token: str, model) -> str:
    if model is None:
        raise UnknownPlaceholder(f"Field token ${token} needs a model")
    if token == "0x":
        raise UnknownPlaceholder("Field offset $0x has no hex digits")
    try:
        if token.startswith("FN-"):
            return model.field(token[3:]).column_name
        return model.field_at(int(token[2:], 16)).column_name
    except KeyError as error:
        raise UnknownPlaceholder(f"Cannot resolve ${token} on model {model.name}") from error


def render_template(skeleton: str, fragments: dict[str, ExecValue], model: Optional["Model"] = None) -> ExecValue:
    """Substitute tokens of ``skeleton`` and return the resulting fragment.

    Raises:
        UnknownPlaceholder: the skeleton uses a token outside the recognized set,
            a recognized fragment token missing from ``fragments``, or a field
            token the model cannot resolve.
    """
    result = ExecValue()
    position = 0
    for match in _TOKEN.finditer(skeleton):
        result = result.append(skeleton[position:match.start()])
        token = match.group(1)
        if token.startswith("FN-") or token.startswith("0x"):
            result = result.append(_field_column(token, model))
        elif token in FRAGMENT_TOKENS:
            if token not in fragments:
                raise UnknownPlaceholder(f"No fragment provided for ${token}")
            result = result.extend(fragments[token])
        else:
            raise UnknownPlaceholder(f"Unknown template token ${token}")
        position = match.end()
    return result.append(skeleton[position:])


__all__ = ["FRAGMENT_TOKENS", "render_template"]
