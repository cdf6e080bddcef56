from __future__ import annotations

DEFAULT_MOOD = "unstoppable"

MOTIVATIONS: dict[str, str] = {
    "hurting": (
        "It is fine to hurt today. The pain is real, and it is not the whole story. "
        "You are still here, still choosing yourself, and that is how it turns around."
    ),
    "confidence": (
        "You are doing better than you give yourself credit for. "
        "Every day you pick yourself is a day that counts. Keep going."
    ),
    "angry": (
        "Put that fire to work. Turn it into a run, a plan, a finished task. "
        "Anger spent on your own progress is never wasted."
    ),
    "unstoppable": (
        "That is the energy. You are not moving on, you are moving up. "
        "Keep the momentum and make today count."
    ),
}


def motivation_for_mood(mood: str) -> str:
    return MOTIVATIONS.get(mood.strip().lower(), MOTIVATIONS[DEFAULT_MOOD])
