"""Per-step checklist templates.

A template maps a step id to the task texts used on that step before, so
the next session's step of the same id starts with the same checklist.
Stored as {step_id: [text, ...]} under the "stepTaskTemplates" key.
"""

from brewmaestro.db import storage
from brewmaestro.db.database import serialized

TEMPLATES_KEY = "stepTaskTemplates"


def get_all() -> dict[str, list[str]]:
    return storage.load(TEMPLATES_KEY) or {}


def get_for_step(step_id: str) -> list[str]:
    return list(get_all().get(step_id, []))


@serialized
def add_task(step_id: str, text: str) -> None:
    """Remember text for step_id. Texts already in the template are not duplicated."""
    templates = get_all()
    texts = templates.setdefault(step_id, [])
    if text in texts:
        return
    texts.append(text)
    storage.save(TEMPLATES_KEY, templates)


@serialized
def remove_task(step_id: str, text: str) -> None:
    """Forget text for step_id. Empty templates are dropped."""
    templates = get_all()
    texts = templates.get(step_id)
    if not texts or text not in texts:
        return
    texts.remove(text)
    if not texts:
        del templates[step_id]
    storage.save(TEMPLATES_KEY, templates)
