from __future__ import annotations

import json
import tomllib
from dataclasses import dataclass, field, fields
from pathlib import Path

from workplan import templates

CONFIG_FILENAME = "workplan.toml"


def _prompt(name: str):
    return field(default=templates.DEFAULT_PROMPTS[name])


def _checklist(name: str):
    return field(default=templates.DEFAULT_CHECKLISTS[name])


def _mode(name: str):
    return field(default=templates.DEFAULT_MODES[name])


class _TemplateSection:
    """Named templates; with `_blank_is_default` a blank value falls back to the built-in."""

    __slots__ = ()
    _defaults: dict[str, str] = {}
    _blank_is_default = True

    def get(self, name: str) -> str:
        value = getattr(self, name, "")
        if isinstance(value, str) and value.strip():
            return value
        if self._blank_is_default:
            return self._defaults.get(name, "")
        return ""

    def to_dict(self) -> dict[str, str]:
        return {item.name: getattr(self, item.name) for item in fields(self)}


@dataclass(slots=True)
class StoreConfig:
    plans_dir: str = ".workplan/plans"
    log_limit: int = 100


@dataclass(slots=True)
class PromptsConfig(_TemplateSection):
    _defaults = templates.DEFAULT_PROMPTS

    description_update: str = _prompt("description_update")
    description_update_rework: str = _prompt("description_update_rework")
    description_review: str = _prompt("description_review")
    description_review_rework: str = _prompt("description_review_rework")
    architecture_creation: str = _prompt("architecture_creation")
    architecture_creation_rework: str = _prompt("architecture_creation_rework")
    architecture_review: str = _prompt("architecture_review")
    architecture_review_rework: str = _prompt("architecture_review_rework")
    points_creation: str = _prompt("points_creation")
    points_creation_rework: str = _prompt("points_creation_rework")
    creation_complete: str = _prompt("creation_complete")
    plan_rework: str = _prompt("plan_rework")
    rework: str = _prompt("rework")
    implementation: str = _prompt("implementation")
    code_review: str = _prompt("code_review")
    testing: str = _prompt("testing")
    plan_review: str = _prompt("plan_review")
    plan_review_failed: str = _prompt("plan_review_failed")
    acceptance: str = _prompt("acceptance")
    done: str = _prompt("done")


@dataclass(slots=True)
class ChecklistsConfig(_TemplateSection):
    _defaults = templates.DEFAULT_CHECKLISTS
    _blank_is_default = False

    description_review: str = _checklist("description_review")
    architecture_review: str = _checklist("architecture_review")
    plan_review_points: str = _checklist("plan_review_points")
    plan_review_plan: str = _checklist("plan_review_plan")


@dataclass(slots=True)
class ModesConfig(_TemplateSection):
    _defaults = templates.DEFAULT_MODES

    description_update: str = _mode("description_update")
    description_review: str = _mode("description_review")
    architecture_creation: str = _mode("architecture_creation")
    architecture_review: str = _mode("architecture_review")
    points_creation: str = _mode("points_creation")
    creation_complete: str = _mode("creation_complete")
    plan_rework: str = _mode("plan_rework")
    rework: str = _mode("rework")
    implementation: str = _mode("implementation")
    code_review: str = _mode("code_review")
    testing: str = _mode("testing")
    plan_review: str = _mode("plan_review")
    acceptance: str = _mode("acceptance")
    done: str = _mode("done")


@dataclass(slots=True)
class CallbacksConfig(_TemplateSection):
    _defaults = templates.DEFAULT_CALLBACKS
    _blank_is_default = False

    description_review: str = templates.DEFAULT_CALLBACKS["description_review"]
    architecture_review: str = templates.DEFAULT_CALLBACKS["architecture_review"]
    plan_review: str = templates.DEFAULT_CALLBACKS["plan_review"]


@dataclass(slots=True)
class WorkplanConfig:
    store: StoreConfig = field(default_factory=StoreConfig)
    prompts: PromptsConfig = field(default_factory=PromptsConfig)
    checklists: ChecklistsConfig = field(default_factory=ChecklistsConfig)
    modes: ModesConfig = field(default_factory=ModesConfig)
    callbacks: CallbacksConfig = field(default_factory=CallbacksConfig)

    @classmethod
    def default(cls) -> WorkplanConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> WorkplanConfig:
        return cls(
            store=StoreConfig(**data.get("store", {})),
            prompts=PromptsConfig(**data.get("prompts", {})),
            checklists=ChecklistsConfig(**data.get("checklists", {})),
            modes=ModesConfig(**data.get("modes", {})),
            callbacks=CallbacksConfig(**data.get("callbacks", {})),
        )

    def to_dict(self) -> dict:
        return {
            "store": {
                "plans_dir": self.store.plans_dir,
                "log_limit": self.store.log_limit,
            },
            "prompts": self.prompts.to_dict(),
            "checklists": self.checklists.to_dict(),
            "modes": self.modes.to_dict(),
            "callbacks": self.callbacks.to_dict(),
        }


def _toml_value(value: object) -> str:
    if isinstance(value, int):
        return str(value)
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: WorkplanConfig) -> str:
    data = config.to_dict()
    lines: list[str] = []
    section_order = ["store", "prompts", "checklists", "modes", "callbacks"]
    for section in section_order:
        lines.append(f"[{section}]")
        for key, value in data[section].items():
            lines.append(f"{key} = {_toml_value(value)}")
        lines.append("")
    return "\n".join(lines).strip() + "\n"


def load_config(path: Path) -> WorkplanConfig:
    if not path.exists():
        return WorkplanConfig.default()
    return WorkplanConfig.from_dict(tomllib.loads(path.read_text(encoding="utf-8")))


def save_config(path: Path, config: WorkplanConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
