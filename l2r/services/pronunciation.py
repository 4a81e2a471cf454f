"""Pronunciation scoring for a single spoken word.

A word counts as pronounced when the normalised transcription equals, or
contains, the normalised expected word. Confidence is the mean vendor
confidence over real words (audio-event tags are ignored).
"""

import random

from l2r.models.voice import PronunciationResult, Transcript

POSITIVE_FEEDBACK = [
    "Great job!",
    "Perfect!",
    "You said it!",
    "Excellent!",
    "Wonderful!",
    "Amazing!",
]

ENCOURAGING_FEEDBACK = [
    'Try again! Say "{word}"',
    'Almost! Try saying "{word}" again',
    'Good try! Can you say "{word}"?',
    "Let's try \"{word}\" one more time!",
]


def _normalise(text: str) -> str:
    return text.lower().strip()


def is_match(transcribed: str, expected: str) -> bool:
    heard = _normalise(transcribed)
    target = _normalise(expected)
    return heard == target or target in heard


def word_confidence(transcript: Transcript) -> float:
    scores = [w.confidence for w in transcript.words if w.type == "word"]
    return sum(scores) / len(scores) if scores else 0.0


def check_pronunciation(transcript: Transcript, expected_word: str) -> PronunciationResult:
    correct = is_match(transcript.text, expected_word)
    if correct:
        feedback = random.choice(POSITIVE_FEEDBACK)
    else:
        feedback = random.choice(ENCOURAGING_FEEDBACK).format(word=expected_word)

    return PronunciationResult(
        is_correct=correct,
        transcribed=transcript.text,
        expected=expected_word,
        confidence=word_confidence(transcript),
        feedback=feedback,
    )
