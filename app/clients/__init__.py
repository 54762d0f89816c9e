from app.clients.assemblyai_client import AssemblyAIClient
from app.clients.ffmpeg_client import FFmpegTranscoder
from app.clients.groq_client import GroqClient
from app.clients.tesseract_client import TesseractRecognizer

__all__ = [
    "AssemblyAIClient",
    "FFmpegTranscoder",
    "GroqClient",
    "TesseractRecognizer",
]
