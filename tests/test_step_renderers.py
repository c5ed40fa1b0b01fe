from __future__ import annotations

import random
import re
from typing import Any

import pytest

from lessonplayer.core.completion import CompletionGuard, CompletionSignal
from lessonplayer.core.context import StepContext
from lessonplayer.core.localizer import localize_config, normalize_lang
from lessonplayer.core.scheduler import ManualScheduler, ScopedScheduler
from lessonplayer.core.view import Container, ScopedWindow, UiEvent, Window
from lessonplayer.steps.audio_lesson import AUDIO_LESSON
from lessonplayer.steps.contract import RenderContext, StepConfigError, StepDescriptor
from lessonplayer.steps.dialogue import DIALOGUE
from lessonplayer.steps.fill_in_blank import FILL_IN_THE_BLANK
from lessonplayer.steps.grammar_mini import GRAMMAR_MINI
from lessonplayer.steps.intent_check import INTENT_CHECK
from lessonplayer.steps.matching_game import MATCHING_GAME
from lessonplayer.steps.movie import MOVIE
from lessonplayer.steps.multiplication_game import MULTIPLICATION_GAME, make_options
from lessonplayer.steps.primer import PRIMER
from lessonplayer.steps.reflection import REFLECTION
from lessonplayer.steps.roleplay import ROLEPLAY
from lessonplayer.steps.roleplay_sequence import ROLEPLAY_SEQUENCE
from lessonplayer.text_catalog import get_text_catalog


class Mounted:
    def __init__(self, descriptor: StepDescriptor, config: dict[str, Any], scheduler: ManualScheduler, lang: str) -> None:
        lang = normalize_lang(lang)
        self.container = Container("stage")
        self.completions: list[CompletionSignal] = []
        self.cleanup = descriptor.render(
            RenderContext(
                container=self.container,
                config=descriptor.validate_config(localize_config(config, lang)),
                on_complete=CompletionGuard(self.completions.append),
                context=StepContext(lang=lang, texts=get_text_catalog()),
                scheduler=ScopedScheduler(scheduler),
                window=ScopedWindow(Window()),
                rng=random.Random(11),
            )
        )

    def click(self, target: str) -> bool:
        return self.container.dispatch(UiEvent(type="click", target=target))

    def props(self, block_id: str) -> dict[str, Any]:
        return self.container.require(block_id).props


def _mount(descriptor: StepDescriptor, config: dict[str, Any], scheduler: ManualScheduler, lang: str = "en") -> Mounted:
    return Mounted(descriptor, config, scheduler, lang)


def test_primer_renders_image_and_completes_on_continue(scheduler) -> None:
    step = _mount(
        PRIMER,
        {"title": {"en": "Hello", "kg": "Салам"}, "src": "img/hello.png", "text": "Intro"},
        scheduler,
        lang="ky",
    )

    assert step.props("primer-title")["text"] == "Салам"
    assert step.props("primer-image")["src"] == "img/hello.png"
    assert step.props("primer-continue")["label"] == "Улантуу"

    step.click("primer-continue")
    step.click("primer-continue")
    assert step.completions == [CompletionSignal(success=True)]


def test_primer_without_image_omits_it(scheduler) -> None:
    step = _mount(PRIMER, {"title": "Hello"}, scheduler)

    assert step.container.find("primer-image") is None


def test_movie_requires_a_video_url(scheduler) -> None:
    with pytest.raises(StepConfigError):
        MOVIE.validate_config({"title": "No video"})

    step = _mount(MOVIE, {"videoUrl": "https://example.com/v.mp4"}, scheduler)
    assert step.props("movie-player")["src"] == "https://example.com/v.mp4"


def test_reflection_requires_some_text(scheduler) -> None:
    step = _mount(REFLECTION, {"prompt": "What did you learn?"}, scheduler)

    step.container.dispatch(UiEvent(type="submit", target="reflection-form", data={"text": "   "}))
    assert step.props("reflection-hint")["text"] == "Please write something first."
    assert step.completions == []

    step.container.dispatch(UiEvent(type="submit", target="reflection-form", data={"text": "Greetings"}))
    assert step.props("reflection-answer")["value"] == "Greetings"
    assert step.completions == [CompletionSignal(success=True)]


FIB_CONFIG = {
    "question": "I ___ tea every day.",
    "options": [
        {"text": "drink", "isCorrect": True},
        {"text": "drinks", "isCorrect": False, "feedback": "Check the subject."},
    ],
}


def test_fill_in_blank_first_try_scores_one(scheduler) -> None:
    step = _mount(FILL_IN_THE_BLANK, FIB_CONFIG, scheduler)

    assert step.props("fib-question") == {"before": "I ", "blank": "___", "after": " tea every day."}
    step.click("fib-option-0")

    assert step.props("fib-question")["blank"] == "drink"
    assert step.props("fib-feedback")["text"] == "Correct!"
    assert step.completions == [CompletionSignal(success=True, score=1)]


def test_fill_in_blank_wrong_answer_then_retry(scheduler) -> None:
    step = _mount(FILL_IN_THE_BLANK, FIB_CONFIG, scheduler)

    step.click("fib-option-1")
    assert step.props("fib-feedback")["text"] == "Check the subject."
    assert step.props("fib-option-0")["state"] == "correct"
    assert step.props("fib-option-1")["state"] == "wrong"
    assert not step.click("fib-option-0")
    assert step.completions == []

    step.click("fib-retry")
    assert step.container.find("fib-retry") is None
    assert "state" not in step.props("fib-option-0")

    step.click("fib-option-0")
    assert step.completions == [CompletionSignal(success=True, score=0)]


def test_fill_in_blank_needs_a_correct_option() -> None:
    with pytest.raises(StepConfigError):
        FILL_IN_THE_BLANK.validate_config({"options": [{"text": "a"}]})


GRAMMAR_CONFIG = {
    "focus": {"en": "Plurals", "ru": "Множественное число"},
    "explanation": "Add -s.",
    "examples": {"en": ["two **cats**"], "ru": ["две **кошки**"]},
    "quiz": [
        {"question": "One cat, two ___", "options": ["cat", "cats"], "answer": "cats"},
        {"question": "One dog, two ___", "options": ["dogs", "dog"], "answer": "dogs"},
    ],
}


def test_grammar_mini_completes_after_every_question(scheduler) -> None:
    step = _mount(GRAMMAR_MINI, GRAMMAR_CONFIG, scheduler, lang="ru")

    assert step.props("gm-example-0") == {"text": "две кошки", "emphasis": ["кошки"]}
    step.click("gm-q0-option-1")
    assert step.props("gm-q0-feedback")["text"] == get_text_catalog().get_text("correct", "ru")
    assert step.completions == []

    # Answering again is ignored.
    assert not step.click("gm-q0-option-0")

    step.click("gm-q1-option-1")
    assert step.props("gm-q1-option-1")["state"] == "wrong"
    assert step.completions == [CompletionSignal(success=True, score=1)]


def test_grammar_mini_without_quiz_has_a_continue_button(scheduler) -> None:
    step = _mount(GRAMMAR_MINI, {"focus": "Articles", "examples": ["a **cat**"]}, scheduler)

    assert step.props("gm-focus")["text"] == "Grammar Focus: Articles"
    step.click("gm-continue")
    assert step.completions == [CompletionSignal(success=True)]


def test_matching_game_wrong_pair_resets_and_full_match_completes(scheduler) -> None:
    step = _mount(MATCHING_GAME, {"pairs": [["cat", "кошка"], ["dog", "собака"]]}, scheduler)

    step.click("match-left-0")
    assert step.props("match-left-0")["state"] == "selected"
    step.click("match-right-1")
    assert step.props("match-left-0")["state"] == "wrong"
    assert step.props("match-msg")["text"] == "Not a match. Try again."
    scheduler.advance(800)
    assert step.props("match-left-0")["state"] == "idle"
    assert step.props("match-right-1")["state"] == "idle"

    step.click("match-right-0")
    step.click("match-left-0")
    assert step.props("match-left-0")["state"] == "matched"
    assert step.props("match-msg")["text"] == "Correct Match!"

    step.click("match-left-1")
    step.click("match-right-1")
    assert step.props("match-msg")["text"] == "Excellent! All pairs matched."
    assert step.completions == []

    scheduler.advance(1000)
    assert step.completions == [CompletionSignal(success=True)]
    assert scheduler.pending() == 0


def test_matching_game_columns_are_shuffled_independently(scheduler) -> None:
    pairs = [{"left": f"L{i}", "right": f"R{i}"} for i in range(8)]
    step = _mount(MATCHING_GAME, {"pairs": pairs}, scheduler)

    left = [b.id for b in step.container.require("match-left").children]
    right = [b.id for b in step.container.require("match-right").children]
    assert sorted(left) == [f"match-left-{i}" for i in range(8)]
    assert [i.rsplit("-", 1)[1] for i in left] != [i.rsplit("-", 1)[1] for i in right]


ROLEPLAY_CONFIG = {
    "scenario": "Meeting a friend",
    "scenes": [
        {"character": "Friend", "dialogue": "Hi!"},
        {
            "character": "You",
            "prompt": "How do you reply?",
            "options": [
                {"text": "Go away.", "isCorrect": False, "feedback": "That is rude."},
                {"text": "Hi, nice to see you!", "isCorrect": True},
            ],
        },
        {"character": "Friend", "dialogue": "Great"},
    ],
}


def test_roleplay_wrong_choice_shows_feedback_and_reenables_same_choices(scheduler) -> None:
    step = _mount(ROLEPLAY_SEQUENCE, ROLEPLAY_CONFIG, scheduler)

    scheduler.advance(75)
    assert step.props("rp-s0-text")["text"] == "Hi!"
    scheduler.advance(2000)
    assert step.props("roleplay")["state"] == "player_choice"
    assert step.props("roleplay")["scene"] == 1

    step.click("rp-s1-option-0")
    assert step.props("rp-s1-feedback")["text"] == "That is rude."
    assert step.props("rp-s1-option-0")["disabled"] is True
    assert step.props("roleplay")["state"] == "feedback"
    assert not step.click("rp-s1-option-1")

    scheduler.advance(1999)
    assert step.props("rp-s1-option-1")["disabled"] is True
    scheduler.advance(1)
    assert step.props("rp-s1-option-1")["disabled"] is False
    assert step.props("rp-s1-feedback")["text"] == ""
    assert step.props("roleplay")["state"] == "player_choice"
    assert step.props("roleplay")["scene"] == 1
    assert step.container.find("rp-scene-2") is None
    assert step.completions == []


def test_roleplay_completes_with_first_try_score(scheduler) -> None:
    step = _mount(ROLEPLAY_SEQUENCE, ROLEPLAY_CONFIG, scheduler)
    scheduler.advance(75 + 2000)

    step.click("rp-s1-option-0")
    scheduler.advance(2000)
    step.click("rp-s1-option-1")
    assert step.props("rp-s1-option-1")["state"] == "correct"

    scheduler.advance(1000)
    assert step.props("roleplay")["scene"] == 2
    scheduler.advance(125 + 2000)

    assert step.props("roleplay")["state"] == "finished"
    assert step.props("rp-complete")["text"] == "Sequence Complete!"
    assert step.props("rp-progress")["value"] == 100
    assert step.completions == [CompletionSignal(success=True, score=0)]
    assert scheduler.pending() == 0


def test_roleplay_player_first_and_all_correct(scheduler) -> None:
    config = {
        "scenes": [
            {"character": "You", "prompt": "Say hi", "options": [{"text": "Hi", "isCorrect": True}]},
            {"character": "You", "prompt": "Ask", "options": [{"text": "How are you?", "isCorrect": True}]},
        ]
    }
    step = _mount(ROLEPLAY_SEQUENCE, config, scheduler)
    assert step.props("roleplay")["state"] == "player_choice"

    step.click("rp-s0-option-0")
    scheduler.advance(1000)
    step.click("rp-s1-option-0")
    scheduler.advance(1000)

    assert step.completions == [CompletionSignal(success=True, score=2)]


def test_roleplay_cleanup_stops_typing(scheduler) -> None:
    step = _mount(ROLEPLAY_SEQUENCE, {"scenes": [{"character": "Friend", "dialogue": "A long line of text"}]}, scheduler)
    scheduler.advance(50)
    assert scheduler.pending() == 1

    step.cleanup()

    assert scheduler.pending() == 0
    assert step.props("rp-s0-text")["text"] == "A "


def test_dialogue_shows_the_guest_as_you_and_speaks_one_line_at_a_time(scheduler) -> None:
    config = {
        "title": "Check-in",
        "lines": [
            {"role": "host", "text": {"en": "Welcome!", "ru": "Добро пожаловать!"}},
            {"role": "Guest", "text": "I have a booking."},
        ],
    }
    step = _mount(DIALOGUE, config, scheduler, lang="ru")

    assert step.props("dlg-line-0-speaker")["text"] == "Host"
    assert step.props("dlg-line-0-text")["text"] == "Добро пожаловать!"
    assert step.props("dlg-line-0")["side"] == "left"
    assert step.props("dlg-line-1-speaker")["text"] == "Вы"
    assert step.props("dlg-line-1")["side"] == "right"

    step.click("dlg-line-0-speak")
    assert step.props("dlg-line-0")["speaking"] is True
    step.click("dlg-line-1-speak")
    assert step.props("dlg-line-0")["speaking"] is False
    assert step.props("dlg-line-1")["speaking"] is True
    assert step.props("dialogue")["last_spoken"] == "I have a booking."
    assert scheduler.pending() == 1

    scheduler.advance(2000)
    assert step.props("dlg-line-1")["speaking"] is False
    assert step.completions == []

    step.click("dlg-continue")
    assert step.completions == [CompletionSignal(success=True)]


def test_dialogue_needs_lines() -> None:
    with pytest.raises(StepConfigError):
        DIALOGUE.validate_config({"title": "Silence", "lines": []})


def test_intent_check_keeps_the_latest_choice_and_completes_once(scheduler) -> None:
    config = {"question": {"en": "Why are you here?"}, "options": [{"en": "Travel", "ru": "Путешествия"}, "Work"]}
    step = _mount(INTENT_CHECK, config, scheduler, lang="ru")
    assert step.props("intent-question")["text"] == "Why are you here?"
    assert step.props("intent-notice")["text"] == ""

    step.click("intent-option-0")
    assert step.props("intent-option-0")["selected"] is True
    assert step.props("intent")["choice"] == "Путешествия"
    assert step.props("intent-notice")["text"] == "Сохранено."

    step.click("intent-option-1")
    assert step.props("intent-option-0")["selected"] is False
    assert step.props("intent-option-1")["selected"] is True
    assert step.props("intent")["choice"] == "Work"
    assert step.completions == [CompletionSignal(success=True)]


def test_audio_lesson_highlights_words_and_stops_play_all(scheduler) -> None:
    config = {"items": [{"word": "Hello", "translation": "Привет"}, {"word": "Bye"}, {"word": "Thanks"}]}
    step = _mount(AUDIO_LESSON, config, scheduler)
    assert step.props("audio-title")["text"] == "Key Vocabulary"

    step.click("audio-item-1-play")
    assert step.props("audio-item-1")["playing"] is True
    assert step.props("audio")["now_playing"] == "Bye"
    scheduler.advance(500)
    assert step.props("audio-item-1")["playing"] is False

    step.click("audio-play-all")
    assert step.props("audio")["now_playing"] == "Hello"
    assert step.props("audio")["playing_all"] is True
    scheduler.advance(1500)
    assert step.props("audio")["now_playing"] == "Bye"

    step.click("audio-stop")
    assert step.props("audio")["playing_all"] is False
    scheduler.advance(5000)
    assert step.props("audio")["now_playing"] == "Bye"
    assert scheduler.pending() == 0
    assert step.completions == []

    step.click("audio-continue")
    assert step.completions == [CompletionSignal(success=True)]


def test_audio_lesson_play_all_ends_after_the_last_word(scheduler) -> None:
    step = _mount(AUDIO_LESSON, {"items": [{"word": "One"}, {"word": "Two"}]}, scheduler)

    step.click("audio-play-all")
    scheduler.advance(1500)
    assert step.props("audio")["now_playing"] == "Two"
    scheduler.advance(1500)
    assert step.props("audio")["playing_all"] is False
    assert scheduler.pending() == 0

    step.click("audio-play-all")
    assert scheduler.pending() == 2
    step.cleanup()
    assert scheduler.pending() == 0


ROLEPLAY_SCENE = {
    "prompt": "A guest asks for a late checkout.",
    "options": ["Certainly, until 2 PM.", "No way."],
    "correctOption": 0,
    "feedback": "Polite and helpful.",
}


def test_roleplay_scene_correct_choice_scores_one(scheduler) -> None:
    step = _mount(ROLEPLAY, ROLEPLAY_SCENE, scheduler)
    assert step.props("rp-title")["text"] == "Roleplay"

    step.click("rp-option-0")

    assert step.props("rp-option-0")["state"] == "correct"
    assert step.props("rp-option-1")["disabled"] is True
    assert step.props("rp-feedback")["text"] == "Polite and helpful."
    assert step.completions == [CompletionSignal(success=True, score=1)]


def test_roleplay_scene_wrong_choice_reveals_the_answer_without_retry(scheduler) -> None:
    step = _mount(ROLEPLAY, ROLEPLAY_SCENE, scheduler, lang="ru")

    step.click("rp-option-1")

    assert step.props("rp-option-1")["state"] == "wrong"
    assert step.props("rp-option-0")["state"] == "correct"
    assert step.props("rp-feedback")["text"] == "Это не лучший вариант."
    assert not step.click("rp-option-0")
    assert step.completions == [CompletionSignal(success=False, score=0)]


def test_roleplay_scene_correct_option_must_exist() -> None:
    with pytest.raises(StepConfigError, match="out of range"):
        ROLEPLAY.validate_config({"options": ["Only one"], "correctOption": 1})


def _answer(step: Mounted) -> int:
    factor, multiplier = re.findall(r"\d+", step.props("mg-question")["text"])
    return int(factor) * int(multiplier)


def _option(step: Mounted, *, correct: bool) -> str:
    answer = _answer(step)
    for i in range(4):
        if (step.props(f"mg-option-{i}")["value"] == answer) is correct:
            return f"mg-option-{i}"
    raise AssertionError("no matching option")


def test_multiplication_game_scores_each_question_and_reports_the_total(scheduler) -> None:
    step = _mount(MULTIPLICATION_GAME, {"factor": 3, "questions": 3}, scheduler)
    assert step.props("mg-title")["text"] == "Table of 3"
    values = [step.props(f"mg-option-{i}")["value"] for i in range(4)]
    assert len(set(values)) == 4
    assert _answer(step) in values

    step.click(_option(step, correct=True))
    assert step.props("mg-score")["text"] == "Score: 1 / 3"
    assert not step.click("mg-option-0")
    scheduler.advance(799)
    assert step.props("mg-question")["number"] == 1
    scheduler.advance(1)
    assert step.props("mg-question")["number"] == 2

    step.click(_option(step, correct=False))
    scheduler.advance(800)
    step.click(_option(step, correct=True))
    assert step.completions == []
    scheduler.advance(800)

    assert step.props("mg-final-score")["text"] == "Final Score: 2/3"
    assert step.completions == [CompletionSignal(success=True, score=2)]
    assert scheduler.pending() == 0


def test_multiplication_game_cleanup_cancels_the_next_question(scheduler) -> None:
    step = _mount(MULTIPLICATION_GAME, {"questions": 2}, scheduler)
    step.click("mg-option-0")
    assert scheduler.pending() == 1

    step.cleanup()

    assert scheduler.pending() == 0
    assert step.props("mg-question")["number"] == 1


def test_multiplication_options_are_distinct_and_include_the_answer() -> None:
    rng = random.Random(3)
    for answer in (1, 5, 50):
        options = make_options(answer, rng)
        assert len(options) == 4
        assert len(set(options)) == 4
        assert answer in options
