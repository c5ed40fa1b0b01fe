from __future__ import annotations

from lessonplayer.registry.registry import StepRegistry

# type id -> (loader, display name, category). Renderer modules are only
# imported when a module actually contains a step of that type.
BUILTIN_STEPS: dict[str, tuple[str, str, str]] = {
    "primer": ("lessonplayer.steps.primer:PRIMER", "Primer", "content"),
    "movie": ("lessonplayer.steps.movie:MOVIE", "Movie", "content"),
    "mission": ("lessonplayer.steps.mission:MISSION", "Mission", "content"),
    "reflection": ("lessonplayer.steps.reflection:REFLECTION", "Reflection", "content"),
    "fillInTheBlank": ("lessonplayer.steps.fill_in_blank:FILL_IN_THE_BLANK", "Fill In The Blank", "assessment"),
    "grammarMini": ("lessonplayer.steps.grammar_mini:GRAMMAR_MINI", "Grammar Mini", "content"),
    "matchingGame": ("lessonplayer.steps.matching_game:MATCHING_GAME", "Matching Game", "assessment"),
    "roleplaySequence": ("lessonplayer.steps.roleplay_sequence:ROLEPLAY_SEQUENCE", "Roleplay Sequence", "simulation"),
    "letterRacingGame": ("lessonplayer.steps.letter_racing:LETTER_RACING", "Letter Racing", "game"),
    "genericSlasher": ("lessonplayer.steps.slasher:SLASHER", "Slasher Game", "game"),
    "dialogue": ("lessonplayer.steps.dialogue:DIALOGUE", "Dialogue", "content"),
    "intentCheck": ("lessonplayer.steps.intent_check:INTENT_CHECK", "Intent Check", "content"),
    "audioLesson": ("lessonplayer.steps.audio_lesson:AUDIO_LESSON", "Audio Lesson", "content"),
    "roleplay": ("lessonplayer.steps.roleplay:ROLEPLAY", "Roleplay", "simulation"),
    "multiplicationGame": ("lessonplayer.steps.multiplication_game:MULTIPLICATION_GAME", "Multiplication Game", "game"),
}


def register_builtin_steps(registry: StepRegistry) -> StepRegistry:
    for type_id, (loader, display_name, category) in BUILTIN_STEPS.items():
        registry.register_lazy(
            type_id,
            loader,
            display_name=display_name,
            category=category,  # type: ignore[arg-type]
        )
    return registry
