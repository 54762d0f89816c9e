import asyncio

import pytesseract

from app.errors import OCRError
from app.pipeline.protocols import OCRReading


class TesseractRecognizer:
    """Run Tesseract on an image file in a worker thread."""

    def __init__(self, language: str = "eng") -> None:
        self.language = language

    async def recognize(self, image_path: str) -> OCRReading:
        try:
            return await asyncio.to_thread(self._recognize, image_path)
        except (pytesseract.TesseractError, OSError) as exc:
            raise OCRError(f"Tesseract failed on {image_path}: {exc}") from exc

    def _recognize(self, image_path: str) -> OCRReading:
        data = pytesseract.image_to_data(
            image_path, lang=self.language, output_type=pytesseract.Output.DICT
        )
        words: list[str] = []
        scores: list[float] = []
        for word, conf in zip(data["text"], data["conf"]):
            conf = float(conf)
            if conf < 0:
                continue  # layout rows (page, block, line) carry conf = -1
            scores.append(conf)
            if word.strip():
                words.append(word)
        confidence = sum(scores) / len(scores) if scores else 0.0
        return OCRReading(text=" ".join(words), confidence_percent=confidence)
