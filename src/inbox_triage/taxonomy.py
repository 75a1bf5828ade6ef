"""User category taxonomy: defaults, editing and serialisation.

Categories are always kept numbered 1..N in display order so prompts and
label names never show gaps.  Each category carries an explicit
``CategoryRole``; names are only inspected to infer a role for settings
saved before roles existed.
"""

from __future__ import annotations

import re
from dataclasses import replace

from .errors import TaxonomyError
from .models import Category, CategoryRole

_PREFIX_RE = re.compile(r"^\d+:\s*")
_COLOR_RE = re.compile(r"^#[0-9a-fA-F]{6}$")

# Legacy display names and the role they imply.
_LEGACY_ROLE_NAMES = {
    CategoryRole.RESPOND: ("respond", "to respond", "reply needed", "action required"),
    CategoryRole.OTHER: ("other",),
}
_LEGACY_ROLE_SUBSTRINGS = {
    CategoryRole.MARKETING: ("marketing", "spam", "promo"),
    CategoryRole.NOTIFICATION: ("notification",),
}


def default_categories() -> list[Category]:
    """Return a fresh copy of the default taxonomy."""
    defaults = [
        ("Action Required", "#fb4c2f", True, "Urgent emails requiring immediate response",
         "Direct questions, time-sensitive requests, decisions needed", CategoryRole.RESPOND),
        ("FYI Only", "#ffad47", False, "Informational emails, no action needed",
         "Status updates, announcements, newsletters you read", None),
        ("Team Updates", "#2da2bb", False, "Team communications and collaboration",
         "Project updates, team mentions, Slack/doc notifications", None),
        ("Notifications", "#43d692", False, "Automated notifications and confirmations",
         "Service notifications, automated confirmations, system updates",
         CategoryRole.NOTIFICATION),
        ("Meetings & Events", "#a479e2", False, "Calendar invites and meeting-related emails",
         "Meeting invites, calendar updates, event confirmations", None),
        ("Waiting for Reply", "#4a86e8", False, "Emails where you're waiting for someone else",
         "Pending responses, delegated tasks, follow-up reminders", None),
        ("Completed", "#16a766", False, "Resolved emails and finished conversations",
         "Task completions, resolved issues, archived conversations", None),
        ("Marketing & Spam", "#f691b3", False, "Promotional emails and unwanted messages",
         "Marketing emails, sales pitches, promotional content", CategoryRole.MARKETING),
        ("Other", "#b99aff", False, "Catch-all for uncategorized emails", "",
         CategoryRole.OTHER),
    ]
    return [
        Category(
            key=i,
            display_name=name,
            color_hex=color,
            enabled=True,
            required=required,
            description=description,
            extra_rules=rules,
            generates_reply=required,
            order=i,
            role=role,
        )
        for i, (name, color, required, description, rules, role) in enumerate(defaults, start=1)
    ]


def strip_prefix(name: str) -> str:
    """Remove a legacy ``"3: "`` order prefix from a display name."""
    return _PREFIX_RE.sub("", name).strip()


def infer_role(display_name: str) -> CategoryRole | None:
    """Guess a role from a legacy display name."""
    name = strip_prefix(display_name).lower()
    for role, names in _LEGACY_ROLE_NAMES.items():
        if name in names:
            return role
    for role, needles in _LEGACY_ROLE_SUBSTRINGS.items():
        if any(n in name for n in needles):
            return role
    return None


def is_catch_all(category: Category) -> bool:
    return category.role == CategoryRole.OTHER


def _reindex(categories: list[Category]) -> list[Category]:
    return [replace(c, key=i, order=i) for i, c in enumerate(categories, start=1)]


def renumber(categories: list[Category]) -> list[Category]:
    """Sort by order and reassign keys and orders as 1..N."""
    return _reindex(sorted(categories, key=lambda c: (c.order, c.key)))


def validate(categories: list[Category]) -> None:
    """Raise TaxonomyError unless the taxonomy holds its invariants."""
    required = [c for c in categories if c.required]
    if len(required) != 1:
        raise TaxonomyError(f"Exactly one category must be required, found {len(required)}.")
    catch_alls = [c for c in categories if c.enabled and is_catch_all(c)]
    if len(catch_alls) > 1:
        raise TaxonomyError("At most one enabled catch-all category is allowed.")
    names = [c.display_name.lower() for c in categories]
    if len(set(names)) != len(names):
        raise TaxonomyError("Category names must be unique.")
    if any(not c.display_name.strip() for c in categories):
        raise TaxonomyError("Category names must not be empty.")


def enabled_categories(categories: list[Category]) -> list[Category]:
    return [c for c in sorted(categories, key=lambda c: c.order) if c.enabled]


def find(categories: list[Category], name: str) -> Category | None:
    for c in categories:
        if c.display_name.lower() == name.lower():
            return c
    return None


def add_category(
    categories: list[Category],
    display_name: str,
    color_hex: str,
    description: str = "",
    extra_rules: str = "",
    role: CategoryRole | None = None,
) -> list[Category]:
    """Append a category, keeping a trailing catch-all last."""
    display_name = display_name.strip()
    if not _COLOR_RE.match(color_hex):
        raise TaxonomyError(f"Invalid colour {color_hex!r}, expected #rrggbb.")
    if find(categories, display_name):
        raise TaxonomyError(f"Category '{display_name}' already exists.")

    current = renumber(categories)
    new = Category(
        key=0,
        display_name=display_name,
        color_hex=color_hex,
        description=description,
        extra_rules=extra_rules,
        role=role,
    )
    if current and is_catch_all(current[-1]):
        current.insert(len(current) - 1, new)
    else:
        current.append(new)

    result = _reindex(current)
    validate(result)
    return result


def remove_category(categories: list[Category], display_name: str) -> list[Category]:
    target = find(categories, display_name)
    if target is None:
        raise TaxonomyError(f"Category '{display_name}' not found.")
    if target.required:
        raise TaxonomyError(f"Category '{target.display_name}' is required and cannot be removed.")
    result = renumber([c for c in categories if c is not target])
    validate(result)
    return result


def set_enabled(categories: list[Category], display_name: str, enabled: bool) -> list[Category]:
    target = find(categories, display_name)
    if target is None:
        raise TaxonomyError(f"Category '{display_name}' not found.")
    if target.required and not enabled:
        raise TaxonomyError(f"Category '{target.display_name}' is required and cannot be disabled.")
    result = [replace(c, enabled=enabled) if c is target else c for c in categories]
    validate(result)
    return result


def category_to_dict(category: Category) -> dict:
    return {
        "key": category.key,
        "name": category.display_name,
        "color": category.color_hex,
        "enabled": category.enabled,
        "required": category.required,
        "description": category.description,
        "rules": category.extra_rules,
        "drafts": category.generates_reply,
        "order": category.order,
        "role": category.role.value if category.role else None,
    }


def category_from_dict(data: dict, key: int = 0) -> Category:
    """Load a stored category.  Entries saved without a role key get one inferred from the name."""
    name = strip_prefix(data.get("name", ""))
    if "role" in data:
        role = CategoryRole(data["role"]) if data["role"] else None
    else:
        role = infer_role(name)
    return Category(
        key=int(data.get("key", key)),
        display_name=name,
        color_hex=data.get("color", "#4a86e8"),
        enabled=bool(data.get("enabled", True)),
        required=bool(data.get("required", False)),
        description=data.get("description", ""),
        extra_rules=data.get("rules") or "",
        generates_reply=bool(data.get("drafts", False)),
        order=int(data.get("order", key)),
        role=role,
    )


def categories_from_data(data) -> list[Category]:
    """Accept either a list of dicts or a legacy ``{"1": {...}}`` mapping."""
    if isinstance(data, dict):
        items = [category_from_dict(v, int(k)) for k, v in data.items()]
    else:
        items = [category_from_dict(v, i) for i, v in enumerate(data, start=1)]
    return renumber(items)
