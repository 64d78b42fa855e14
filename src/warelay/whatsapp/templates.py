"""User-facing texts generated by the relay itself.

Bot content comes from the bot backend; these are the few messages the
relay sends on its own. Rendered in memory at send time only.
"""

from typing import Any

TEMPLATES: dict[str, dict[str, Any]] = {
    "menu_changed_notice": {
        "text": (
            "I see you were talking to me about “{previous}”.\n"
            "If you want to talk about “{current}”, please pick an option "
            "from the menu below."
        ),
        "allowed_params": ["previous", "current"],
    },
}

PREVIOUS_CHOICE_FALLBACK = "a previous option"


def render(template_key: str, params: dict[str, Any]) -> str:
    """Render template with params. Validates allowed_params.

    Args:
        template_key: Template identifier.
        params: Parameters to interpolate (must be in allowed_params).

    Returns:
        Rendered text string.

    Raises:
        ValueError: If template_key unknown or params contains disallowed keys.
    """
    if template_key not in TEMPLATES:
        raise ValueError(f"Unknown template: {template_key}")

    template = TEMPLATES[template_key]
    allowed = set(template["allowed_params"])
    provided = set(params.keys())

    extras = provided - allowed
    if extras:
        raise ValueError(f"Disallowed params for {template_key}: {extras}")

    missing = allowed - provided
    if missing:
        raise ValueError(f"Missing params for {template_key}: {missing}")

    return template["text"].format(**params)


def menu_changed_notice(previous: str | None, current: str) -> str:
    return render(
        "menu_changed_notice",
        {"previous": previous or PREVIOUS_CHOICE_FALLBACK, "current": current},
    )
