"""
Welcome presentation shown by the ``stage-os`` command.
"""

import logging

log = logging.getLogger(__name__)

BACKDROP = "builtin:backdrop.png"


def welcome_presentation(runtime) -> None:
    """Register the demo slides and open the first one. Runs on ``start``."""
    sm = runtime.create_slide_manager()

    def on_slide_change(event, new, old):
        log.info(f"Now showing {new.name}")

    sm.bind("slideChange", on_slide_change)

    sm.add(
        {
            "intro": {
                "media": BACKDROP,
                "text": "Welcome to StageOS",
                "buttons": {"Take the quiz": "quiz"},
                "music": "builtin:theme.mp3",
            },
            "quiz": {
                "media": "keep",
                "text": "Which subsystem positions every element?",
                "buttons": [
                    {"label": "The layout engine", "click": "correct", "color": "green"},
                    {"label": "The message bridge", "click": "wrong", "color": "red"},
                ],
                "metronome": 90,
                "delay": {"duration": "20s", "complete": "wrong"},
            },
            "correct": {
                "media": "keep",
                "text": "Right. Containers push rectangles down the tree.",
                "sound": "builtin:applause.mp3",
                "delay": {"duration": 5, "complete": "intro", "style": "hidden"},
            },
            "wrong": {
                "media": "keep",
                "bubbles": [
                    {"type": "text", "text": "Not quite.", "autoClose": "text"},
                    {"type": "buttons", "buttons": {"Try again": "quiz", "Back": "intro"}},
                ],
                "metronome": "keep",
                "music": "stop",
                "delay": {"duration": 30, "complete": "intro", "style": "unknown"},
            },
        }
    )

    sm.navigate("intro")
