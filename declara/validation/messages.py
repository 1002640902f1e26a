"""
Declara Messages
================

Failure message formatting.

Messages are looked up per locale by validator name. English text comes
from each validator's ``message`` template; other locales are registered
in a ``MessageCatalog``. Templates use ``str.format`` placeholders named
after the validator's fields, plus ``{value}`` (short repr of the captured
value) and ``{validator}`` (validator name).

Lookup order:
    1. catalog template for the requested locale
    2. catalog template for ``messages.fallback``
    3. the validator's own ``message`` (template string or method)
    4. ``repr(validator)``

Example:
    catalog.register("de", {"RangeValidation": "{actual} liegt nicht in [{min}, {max}]"})
    format_message(failure, "de")
"""

from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Mapping, Optional

from declara.core.config import get_config
from declara.utils.helpers import truncate

FRENCH: Dict[str, str] = {
    "RangeValidation": "{actual} n'est pas compris entre {min} et {max}",
    "LenValidation": "la longueur {length} n'est pas comprise entre {min} et {max}",
    "NonEmptyValidation": "la valeur ne doit pas être vide",
    "RequiredValidation": "la valeur est obligatoire",
    "PatternValidation": "{value} ne correspond pas au motif {pattern}",
    "PrefixValidation": "{value} ne commence pas par {prefix!r}",
    "SuffixValidation": "{value} ne se termine pas par {suffix!r}",
    "ContainsValidation": "{value} ne contient pas {substring!r}",
    "AsciiValidation": "{value} contient des caractères non ASCII",
    "AlphanumericValidation": "{value} contient des caractères non alphanumériques",
    "CaseValidation": "{value} n'est pas au format {case.value}",
    "MatchesValidation": "les valeurs ne correspondent pas",
    "EmailValidation": "{value} n'est pas une adresse e-mail valide",
    "UrlValidation": "{value} n'est pas une URL valide",
    "IpValidation": "{value} n'est pas une adresse {kind.value} valide",
    "PhoneNumberValidation": "{value} n'est pas un numéro de téléphone valide",
    "CreditCardValidation": "{value} n'est pas un numéro de carte valide",
    "PositiveValidation": "{actual} doit être strictement positif",
    "NegativeValidation": "{actual} doit être strictement négatif",
    "NonNegativeValidation": "{actual} ne doit pas être négatif",
    "NonPositiveValidation": "{actual} ne doit pas être positif",
}


def validator_name(validator: Any) -> str:
    """Registered name of a validator instance."""
    named = getattr(type(validator), "validator_name", None)
    if callable(named):
        return named()
    return type(validator).__name__


def message_params(validator: Any) -> Dict[str, Any]:
    """Placeholders available to templates for one validator."""
    own_params = getattr(validator, "params", None)
    if callable(own_params):
        params = dict(own_params())
    elif dataclasses.is_dataclass(validator):
        params = {f.name: getattr(validator, f.name) for f in dataclasses.fields(validator)}
    else:
        params = dict(getattr(validator, "__dict__", {}))

    captured = getattr(validator, "captured", None)
    params.setdefault("value", truncate(repr(captured), 60))
    params.setdefault("validator", validator_name(validator))
    return params


class MessageCatalog:
    """Per-locale message templates keyed by validator name."""

    def __init__(self) -> None:
        self._templates: Dict[str, Dict[str, str]] = {}

    def register(self, locale: str, templates: Mapping[str, str]) -> None:
        """Add or replace templates for a locale."""
        self._templates.setdefault(locale, {}).update(templates)

    def locales(self) -> List[str]:
        return sorted(self._templates)

    def template_for(self, validator: Any, locale: str) -> Optional[str]:
        return self._templates.get(locale, {}).get(validator_name(validator))

    def format(self, validator: Any, locale: Optional[str] = None) -> str:
        """Format the failure message of a validator."""
        config = get_config()
        requested = locale or config.get("messages.locale", "en")
        fallback = config.get("messages.fallback", "en")

        for candidate in dict.fromkeys((requested, fallback)):
            template = self.template_for(validator, candidate)
            if template is not None:
                return template.format(**message_params(validator))

        own = getattr(validator, "message", None)
        if callable(own):
            return str(own(requested))
        if isinstance(own, str):
            return own.format(**message_params(validator))
        return repr(validator)


# Global catalog
catalog = MessageCatalog()
catalog.register("fr", FRENCH)


def format_message(validator: Any, locale: Optional[str] = None) -> str:
    """Format a failure message using the global catalog."""
    return catalog.format(validator, locale)
