"""
OCR Pipeline End-to-End Tests (Vision mocked with httpx MockTransport)
=======================================================================

What we test:
    ✅ Space break + line break → one cleaned line
    ✅ Noise-only lines absent from cleanedLines and cleanedText
    ✅ No text anywhere → empty result, no error
    ✅ data-URL prefixed payload behaves exactly like the bare payload
    ✅ Engine receives the normalized PNG and the hints
    ✅ Decode failures stop before any network call
"""

import base64
import io

import pytest
from PIL import Image

from beanscan.exceptions import ImageDecodeError, RecognitionEngineError
from beanscan.ocr.image import normalize_image
from beanscan.ocr.pipeline import run_ocr_pipeline
from vision_fixtures import RecordingVision, annotation_response, vision_line, vision_response


async def _run(handler: RecordingVision, image_base64: str, hints=()):
    async with handler.client() as http_client:
        return await run_ocr_pipeline(image_base64, hints, "test-key", http_client=http_client)


class TestOcrPipeline:
    @pytest.mark.asyncio
    async def test_space_then_line_break_forms_one_cleaned_line(self, png_base64):
        words = vision_line("Dobrá Káva", end_break="LINE_BREAK")
        handler = RecordingVision(
            annotation_response([{"paragraphs": [{"words": words}]}], "Dobrá Káva\n")
        )

        result = await _run(handler, png_base64)

        assert result.raw_text == "Dobrá Káva"
        assert result.cleaned_lines == ("Dobrá Káva",)
        assert result.cleaned_text == "Dobrá Káva"
        assert result.normalized_text == "Dobra Kava"

    @pytest.mark.asyncio
    async def test_noise_lines_are_removed(self, png_base64):
        handler = RecordingVision(vision_response(["Kolumbia Huila", "||||||", "250 g"]))

        result = await _run(handler, png_base64)

        assert "||||||" not in result.cleaned_lines
        assert "||||||" not in result.cleaned_text
        assert result.cleaned_lines == ("Kolumbia Huila", "250 g")
        # raw lines are reported unfiltered
        assert [line.text for line in result.lines] == ["Kolumbia Huila", "||||||", "250 g"]

    @pytest.mark.asyncio
    async def test_no_text_is_an_empty_result(self, png_base64):
        handler = RecordingVision({"responses": [{}]})

        result = await _run(handler, png_base64)

        assert result.raw_text == ""
        assert result.blocks == ()
        assert result.lines == ()
        assert result.cleaned_lines == ()
        assert result.cleaned_text == ""
        assert result.metadata.detected_language == "sk"
        assert result.metadata.confidence is None

    @pytest.mark.asyncio
    async def test_data_url_prefix_is_equivalent(self, png_base64):
        bare = RecordingVision(vision_response(["Káva"]))
        prefixed = RecordingVision(vision_response(["Káva"]))

        first = await _run(bare, png_base64)
        second = await _run(prefixed, f"data:image/png;base64,{png_base64}")

        assert first == second
        assert bare.body() == prefixed.body()

    @pytest.mark.asyncio
    async def test_engine_receives_normalized_image_and_hints(self, png_base64):
        handler = RecordingVision(vision_response(["Káva"]))

        await _run(handler, png_base64, ["sk", "cs"])

        request = handler.body()["requests"][0]
        assert request["imageContext"] == {"languageHints": ["sk", "cs"]}
        assert request["image"]["content"] == normalize_image(png_base64)
        sent = Image.open(io.BytesIO(base64.b64decode(request["image"]["content"])))
        assert sent.mode == "L"

    @pytest.mark.asyncio
    async def test_metadata_language_and_confidence(self, png_base64):
        handler = RecordingVision(
            vision_response([("ľšť", 0.9), ("čaj", 0.7)])
        )

        result = await _run(handler, png_base64, ["sk"])

        assert result.metadata.detected_language == "sk"
        assert result.metadata.confidence == pytest.approx(0.8)

    @pytest.mark.asyncio
    async def test_serializes_with_camel_case_keys(self, png_base64):
        handler = RecordingVision(vision_response(["Káva"]))

        body = (await _run(handler, png_base64)).model_dump(by_alias=True)

        assert set(body) == {
            "rawText",
            "cleanedText",
            "cleanedLines",
            "normalizedText",
            "blocks",
            "lines",
            "metadata",
        }
        assert set(body["metadata"]) == {"detectedLanguage", "confidence"}

    @pytest.mark.asyncio
    async def test_decode_error_makes_no_network_call(self):
        handler = RecordingVision(vision_response(["Káva"]))

        with pytest.raises(ImageDecodeError):
            await _run(handler, base64.b64encode(b"plain text").decode("ascii"))

        assert handler.calls == 0

    @pytest.mark.asyncio
    async def test_engine_error_propagates(self, png_base64):
        handler = RecordingVision({"responses": [{"error": {"code": 3, "message": "Bad image"}}]})

        with pytest.raises(RecognitionEngineError):
            await _run(handler, png_base64)
