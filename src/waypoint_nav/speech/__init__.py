from .tts import PRIORITY_HIGH, PRIORITY_LOW, Pyttsx3Speech, SpeechService

__all__ = ["PRIORITY_HIGH", "PRIORITY_LOW", "Pyttsx3Speech", "SpeechService"]
