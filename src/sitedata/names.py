"""Name primitives and validation rules.

This module defines the identifier patterns and strongly-typed aliases
used for secret names, port names and distillation keys.

The placeholder pattern is part of the cache contract: masked requests
carry `<NAME>` tokens in place of secret values, and the hash of a
request depends on these tokens only.
"""

from re import ASCII
from re import compile as regexp
from typing import Annotated

from pydantic import Field

#: Base pattern for secret names (environment-variable style).
_SECRET_PATTERN = r'[A-Za-z_][A-Za-z0-9_]*'

#: Base pattern for port names ("readFile", "db.query").
_PORT_PATTERN = r'[a-zA-Z][\w]*(\.[a-zA-Z][\w]*)*'

#: Compiled pattern for secret names.
SECRET_PATTERN = regexp(rf'^{_SECRET_PATTERN}$', flags=ASCII)

#: Compiled pattern for secret placeholders inside masked values.
PLACEHOLDER_PATTERN = regexp(rf'<(?P<name>{_SECRET_PATTERN})>', flags=ASCII)

#: Compiled pattern for port names.
PORT_PATTERN = regexp(rf'^{_PORT_PATTERN}$', flags=ASCII)


def placeholder(name: str) -> str:
    """Build the masking placeholder for a secret name."""
    return f'<{name}>'


SecretName = Annotated[
    str, Field(
        pattern=rf'^{_SECRET_PATTERN}$',
        title='Secret name',
        description=(
            'Name of a secret resolved from the secrets provider. '
            'Names follow environment variable conventions: letters, '
            'digits and underscores, not starting with a digit.'
        ),
        examples=[
            'API_TOKEN',
            'github_token',
        ],
    ),
]

PortName = Annotated[
    str, Field(
        pattern=rf'^{_PORT_PATTERN}$',
        title='Port name',
        description=(
            'Name of a host-defined RPC channel. '
            'May be namespaced using dot notation (for example, `db.query`).'
        ),
        examples=[
            'environmentVariable',
            'db.query',
        ],
    ),
]

DistillKey = Annotated[
    str, Field(
        min_length=1,
        title='Distillation key',
        description=(
            'Small stable key under which a resolved value is persisted '
            'instead of the raw responses it was computed from.'
        ),
        examples=[
            'repo-stars',
        ],
    ),
]
