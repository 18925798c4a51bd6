"""Per-stage prompt settings, named presets, and settings import/export."""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from docrefine.core import prompts
from docrefine.core.config import Settings
from docrefine.core.errors import SettingsImportError
from docrefine.core.schemas import Stage, new_id

DEFAULT_PRESET_ID = "default"
EXPORT_VERSION = 1

STAGE_DEFAULTS: dict[Stage, tuple[str, str, float]] = {
    Stage.ANALYZE: (
        prompts.DEFAULT_PERSONA_PROMPT,
        prompts.DEFAULT_USER_PROMPT,
        prompts.DEFAULT_TEMPERATURE,
    ),
    Stage.QUESTIONS: (
        prompts.DEFAULT_QG_PERSONA_PROMPT,
        prompts.DEFAULT_QG_USER_PROMPT,
        prompts.DEFAULT_QG_TEMPERATURE,
    ),
    Stage.REFINE: (
        prompts.DEFAULT_REFINE_PERSONA_PROMPT,
        prompts.DEFAULT_REFINE_USER_PROMPT,
        prompts.DEFAULT_REFINE_TEMPERATURE,
    ),
    Stage.DIFF: (
        prompts.DEFAULT_DIFF_PERSONA_PROMPT,
        prompts.DEFAULT_DIFF_USER_PROMPT,
        prompts.DEFAULT_DIFF_TEMPERATURE,
    ),
}


class PromptPreset(BaseModel):
    id: str = Field(default_factory=new_id)
    name: str
    persona_prompt: str
    user_prompt: str
    temperature: float


class StageSettings(BaseModel):
    persona_prompt: str
    user_prompt: str
    temperature: float = Field(ge=0.0, le=2.0)
    model: str | None = None
    selected_preset_id: str = DEFAULT_PRESET_ID
    presets: list[PromptPreset] = Field(default_factory=list)

    def reset_prompts(self, stage: Stage) -> None:
        self.persona_prompt, self.user_prompt, self.temperature = STAGE_DEFAULTS[stage]


def default_stage_settings(stage: Stage, model: str | None = None) -> StageSettings:
    persona, user, temperature = STAGE_DEFAULTS[stage]
    return StageSettings(persona_prompt=persona, user_prompt=user, temperature=temperature, model=model)


class PromptSettings(BaseModel):
    """Prompt configuration for all four stages."""

    stages: dict[Stage, StageSettings]
    # The refine model tracks the analysis model until the user picks one
    refine_model_pinned: bool = False

    @classmethod
    def defaults(cls, settings: Settings) -> "PromptSettings":
        return cls(
            stages={
                Stage.ANALYZE: default_stage_settings(Stage.ANALYZE, settings.OPENROUTER_MODEL),
                Stage.QUESTIONS: default_stage_settings(Stage.QUESTIONS, settings.OPENROUTER_AUX_MODEL),
                Stage.REFINE: default_stage_settings(Stage.REFINE, settings.OPENROUTER_MODEL),
                Stage.DIFF: default_stage_settings(Stage.DIFF, settings.OPENROUTER_AUX_MODEL),
            }
        )

    def stage(self, stage: Stage) -> StageSettings:
        return self.stages[stage]

    def update_stage(
        self,
        stage: Stage,
        persona_prompt: str | None = None,
        user_prompt: str | None = None,
        temperature: float | None = None,
    ) -> StageSettings:
        current = self.stages[stage]
        updates: dict[str, Any] = {}
        if persona_prompt is not None:
            updates["persona_prompt"] = persona_prompt
        if user_prompt is not None:
            updates["user_prompt"] = user_prompt
        if temperature is not None:
            updates["temperature"] = temperature
        # Re-validate through the model so bounds still apply
        self.stages[stage] = StageSettings.model_validate({**current.model_dump(), **updates})
        return self.stages[stage]

    def set_model(self, stage: Stage, model: str) -> None:
        self.stages[stage].model = model
        if stage == Stage.REFINE:
            self.refine_model_pinned = True
        elif stage == Stage.ANALYZE and not self.refine_model_pinned:
            self.stages[Stage.REFINE].model = model

    # ------------------------------------------------------------------
    # Presets
    # ------------------------------------------------------------------

    def save_preset(self, stage: Stage, name: str) -> PromptPreset | None:
        """Save the stage's current prompts under ``name``, replacing a same-name preset."""
        name = name.strip()
        if not name:
            return None
        current = self.stages[stage]
        preset = PromptPreset(
            name=name,
            persona_prompt=current.persona_prompt,
            user_prompt=current.user_prompt,
            temperature=current.temperature,
        )
        current.presets = [p for p in current.presets if p.name != name] + [preset]
        current.selected_preset_id = preset.id
        return preset

    def load_preset(self, stage: Stage, preset_id: str) -> StageSettings:
        current = self.stages[stage]
        current.selected_preset_id = preset_id
        preset = next((p for p in current.presets if p.id == preset_id), None)
        if preset_id == DEFAULT_PRESET_ID or preset is None:
            current.reset_prompts(stage)
        else:
            current.persona_prompt = preset.persona_prompt
            current.user_prompt = preset.user_prompt
            current.temperature = preset.temperature
        return current

    def delete_preset(self, stage: Stage, preset_id: str) -> StageSettings:
        current = self.stages[stage]
        current.presets = [p for p in current.presets if p.id != preset_id]
        current.selected_preset_id = DEFAULT_PRESET_ID
        current.reset_prompts(stage)
        return current

    # ------------------------------------------------------------------
    # Export / import
    # ------------------------------------------------------------------

    def export_settings(self) -> dict[str, Any]:
        """Portable settings document; preset ids are replaced by names."""
        sections = {}
        for stage, current in self.stages.items():
            selected = next(
                (p.name for p in current.presets if p.id == current.selected_preset_id), None
            )
            sections[stage.value] = {
                "personaPrompt": current.persona_prompt,
                "userPrompt": current.user_prompt,
                "temperature": current.temperature,
                "selectedPresetName": selected,
                "presets": [
                    {
                        "name": p.name,
                        "personaPrompt": p.persona_prompt,
                        "userPrompt": p.user_prompt,
                        "temperature": p.temperature,
                    }
                    for p in current.presets
                ],
            }
        return {
            "version": EXPORT_VERSION,
            "exportedAt": datetime.now(timezone.utc).isoformat(),
            "settings": sections,
        }

    def import_settings(self, data: Any) -> None:
        """
        Replace prompts and presets from an exported settings document.

        Raises:
            SettingsImportError: If the document is not a version 1 export
                with all four stage sections
        """
        if not isinstance(data, dict) or data.get("version") != EXPORT_VERSION:
            raise SettingsImportError("Unsupported settings file format")
        sections = data.get("settings")
        if not isinstance(sections, dict) or not all(s.value in sections for s in Stage):
            raise SettingsImportError("Settings file is missing required stage sections")

        imported: dict[Stage, StageSettings] = {}
        for stage in Stage:
            section = sections[stage.value]
            if not isinstance(section, dict):
                raise SettingsImportError(f"Section '{stage.value}' must be an object")
            default_persona, default_user, default_temperature = STAGE_DEFAULTS[stage]
            raw_presets = section.get("presets")
            if not isinstance(raw_presets, list):
                raw_presets = []

            try:
                presets = []
                for raw in raw_presets:
                    if not isinstance(raw, dict) or not str(raw.get("name") or "").strip():
                        continue
                    presets.append(
                        PromptPreset(
                            name=str(raw["name"]).strip(),
                            persona_prompt=raw.get("personaPrompt") or default_persona,
                            user_prompt=raw.get("userPrompt") or default_user,
                            temperature=raw.get("temperature", default_temperature),
                        )
                    )
                selected_name = section.get("selectedPresetName")
                selected = next((p for p in presets if selected_name and p.name == selected_name), None)

                temperature = section.get("temperature")
                imported[stage] = StageSettings(
                    persona_prompt=section.get("personaPrompt") or default_persona,
                    user_prompt=section.get("userPrompt") or default_user,
                    temperature=default_temperature if temperature is None else temperature,
                    model=self.stages[stage].model,
                    selected_preset_id=selected.id if selected else DEFAULT_PRESET_ID,
                    presets=presets,
                )
            except ValueError as e:
                raise SettingsImportError(f"Invalid values in section '{stage.value}': {e}") from e

        self.stages = imported
