"""Secret references, masking and unmasking of requests.

Requests may depend on secret values (API tokens, credentials). The
engine never hashes or caches secret values: a request template embeds
explicit `Secret` references, masking replaces each reference with a
`<NAME>` placeholder (the form that is hashed and cached), and unmasking
substitutes the real value right before the host sends the request.

Secret values come from an explicitly passed `SecretsProvider`. Each
name maps to an ordered list of candidate values to support rotation:
the first candidate is used for sending, all candidates are accepted
when verifying previously produced values.
"""

from collections.abc import Mapping, Sequence
from os import environ as os_environ
from typing import TYPE_CHECKING, Any, Literal

from pydantic import Field, SecretStr

from sitedata.errors import MissingSecretError
from sitedata.models import SchemaModel
from sitedata.names import PLACEHOLDER_PATTERN, SecretName, placeholder
from sitedata.request import Body, BytesBody, EmptyBody, JsonBody, Request, StringBody, Target
from sitedata.values import MAPPINGS, SEQUENCES

if TYPE_CHECKING:
    from collections.abc import Callable
    from re import Match

    from sitedata.values import Json


class Secret(SchemaModel):
    """Reference to a secret value by name."""

    name: SecretName = Field(
        title='Secret name',
        description='Name of the referenced secret.',
    )


class Template(SchemaModel):
    """String made of literal parts and secret references."""

    parts: tuple[str | Secret, ...] = Field(
        default=(),
        title='Parts',
        description='Literal strings and secret references, in order.',
    )

    @property
    def names(self) -> tuple[str, ...]:
        """Names of the referenced secrets, in order of appearance."""
        return tuple(part.name for part in self.parts if isinstance(part, Secret))

    def render(self, lookup: 'Callable[[str], str]') -> str:
        """Render the template with a lookup for secret names."""
        return ''.join(
            lookup(part.name) if isinstance(part, Secret) else part
            for part in self.parts
        )


class StringTemplateBody(SchemaModel):
    """Text body that may contain secret references."""

    kind: Literal['string-template'] = 'string-template'

    content: Template
    mime_type: str = 'text/plain'


class JsonTemplateBody(SchemaModel):
    """JSON body whose string leaves may be secret references or templates."""

    kind: Literal['json-template'] = 'json-template'

    value: Any


def secret(name: str) -> Secret:
    """Reference a secret by name."""
    return Secret(name=name)


def template(*parts: str | Secret) -> Template:
    """Build a string template from literals and secret references."""
    return Template(parts=parts)


type Text = str | Secret | Template


def _as_template(value: Text) -> Template:
    """Coerce a text value into a template."""
    if isinstance(value, Template):
        return value

    return Template(parts=(value,))


class SecretsProvider:
    """Source of secret values with rotation support."""

    def __init__(self, values: 'Mapping[str, str | SecretStr | Sequence[str | SecretStr]] | None' = None) -> None:
        """Initialize the provider.

        Args:
            values: Mapping of secret names to a value or an ordered
                sequence of candidate values (newest first).
        """
        self._values: dict[str, tuple[SecretStr, ...]] = {}

        for name, candidates in (values or {}).items():
            if isinstance(candidates, str | SecretStr):
                candidates = (candidates,)
            self._values[name] = tuple(
                item if isinstance(item, SecretStr) else SecretStr(item)
                for item in candidates
            )

    @classmethod
    def from_environ(cls, environ: Mapping[str, str] | None = None) -> 'SecretsProvider':
        """Build a provider from process environment variables."""
        return cls(dict(os_environ if environ is None else environ))

    @property
    def names(self) -> tuple[str, ...]:
        """Names of the known secrets."""
        return tuple(sorted(name for name, values in self._values.items() if values))

    def candidates(self, name: str) -> tuple[SecretStr, ...]:
        """Candidate values of a secret.

        Raises:
            MissingSecretError: If the secret has no candidate.
        """
        if candidates := self._values.get(name):
            return candidates

        raise MissingSecretError(name, self.names)

    def get(self, name: str) -> str:
        """Value of a secret used for sending (the first candidate).

        Raises:
            MissingSecretError: If the secret has no candidate.
        """
        return self.candidates(name)[0].get_secret_value()

    def verify(self, name: str, value: str) -> bool:
        """Check a value against every candidate of a secret."""
        try:
            candidates = self.candidates(name)
        except MissingSecretError:
            return False

        return any(item.get_secret_value() == value for item in candidates)


class RequestTemplate(SchemaModel):
    """Request whose URL, headers and body may reference secrets."""

    target: Target = 'http'
    method: str = 'GET'
    url: str | Template
    headers: tuple[tuple[str, str | Template], ...] = ()
    body: (EmptyBody | StringBody | JsonBody | BytesBody
           | StringTemplateBody | JsonTemplateBody | None) = None

    @property
    def names(self) -> tuple[str, ...]:
        """Names of every referenced secret (unique, in order)."""
        names = list(_as_template(self.url).names)
        for _, header in self.headers:
            names.extend(_as_template(header).names)

        if isinstance(self.body, StringTemplateBody):
            names.extend(self.body.content.names)
        elif isinstance(self.body, JsonTemplateBody):
            names.extend(_json_names(self.body.value))

        return tuple(dict.fromkeys(names))

    def _render(self, lookup: 'Callable[[str], str]', names: tuple[str, ...]) -> Request:
        """Render every template with a lookup."""
        body: Body | None
        if isinstance(self.body, StringTemplateBody):
            body = StringBody(content=self.body.content.render(lookup), mime_type=self.body.mime_type)
        elif isinstance(self.body, JsonTemplateBody):
            body = JsonBody(value=_render_json(self.body.value, lookup))
        else:
            body = self.body

        return Request(
            target=self.target,
            method=self.method,
            url=_as_template(self.url).render(lookup),
            headers=tuple(
                (name, _as_template(value).render(lookup))
                for name, value in self.headers
            ),
            **({'body': body} if body is not None else {}),
            secrets=names,
        )

    def mask(self) -> Request:
        """Build the masked request (placeholders instead of values)."""
        return self._render(placeholder, self.names)

    def unmask(self, secrets: SecretsProvider) -> Request:
        """Build the request to send, with real secret values.

        Raises:
            MissingSecretError: If a referenced secret is not defined.
        """
        return self._render(secrets.get, ())


def _json_names(value: Any) -> list[str]:  # noqa: ANN401
    """Collect secret names referenced inside a JSON template."""
    if isinstance(value, Secret | Template):
        return list(_as_template(value).names)

    if isinstance(value, MAPPINGS):
        return [name for item in value.values() for name in _json_names(item)]

    if isinstance(value, SEQUENCES):
        return [name for item in value for name in _json_names(item)]

    return []


def _render_json(value: Any, lookup: 'Callable[[str], str]') -> 'Json':  # noqa: ANN401
    """Render secret references inside a JSON template."""
    if isinstance(value, Secret | Template):
        return _as_template(value).render(lookup)

    if isinstance(value, MAPPINGS):
        return {key: _render_json(item, lookup) for key, item in value.items()}

    if isinstance(value, SEQUENCES):
        return [_render_json(item, lookup) for item in value]

    return value


def _substitute(text: str, values: Mapping[str, str]) -> str:
    """Replace placeholders of known names in a string."""
    def replace(match: 'Match[str]') -> str:
        name = match.group('name')
        return values.get(name, match.group(0))

    return PLACEHOLDER_PATTERN.sub(replace, text)


def _substitute_json(value: 'Json', values: Mapping[str, str]) -> 'Json':
    """Replace placeholders inside JSON string leaves."""
    if isinstance(value, str):
        return _substitute(value, values)

    if isinstance(value, MAPPINGS):
        return {key: _substitute_json(item, values) for key, item in value.items()}

    if isinstance(value, SEQUENCES):
        return [_substitute_json(item, values) for item in value]

    return value


def unmask(request: Request, secrets: SecretsProvider) -> Request:
    """Substitute real secret values into a masked request.

    Only placeholders of the names listed in `request.secrets` are
    replaced; other `<...>` text is left untouched.

    Args:
        request: Masked request.
        secrets: Provider of secret values.

    Returns:
        The request to send.

    Raises:
        MissingSecretError: If a referenced secret is not defined.
    """
    if not request.secrets:
        return request

    values = {name: secrets.get(name) for name in request.secrets}

    body = request.body
    if isinstance(body, StringBody):
        body = StringBody(content=_substitute(body.content, values), mime_type=body.mime_type)
    elif isinstance(body, JsonBody):
        body = JsonBody(value=_substitute_json(body.value, values))

    return request.model_copy(update={
        'url': _substitute(request.url, values),
        'headers': tuple(
            (name, _substitute(value, values))
            for name, value in request.headers
        ),
        'body': body,
        'secrets': (),
    })


def masked(request: RequestTemplate | Request) -> Request:
    """Return the masked form of a request or request template."""
    if isinstance(request, RequestTemplate):
        return request.mask()

    return request
