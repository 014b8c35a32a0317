"""Tests for AI enrichment: OpenRouter payloads (httpx mocked) and placeholder fallbacks."""

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

import httpx

from app.core.config import Settings
from app.core.errors import AssetMissing, UpstreamFailure, ValidationFailed
from app.models import Project
from app.services import ai
from app.services.analysis import analyze_project, generate_cover
from app.services.assets import LoadedAudio


def _settings(api_key: str | None = "sk-test") -> Settings:
    return Settings(_env_file=None, DATABASE_URL="sqlite://", OPENROUTER_API_KEY=api_key)


def _mock_response(status_code: int = 200, body: object = None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = body
    return response


def _install_client(mock_client_class: MagicMock, post: AsyncMock) -> MagicMock:
    mock_instance = MagicMock()
    mock_instance.post = post
    mock_client_class.return_value.__aenter__ = AsyncMock(return_value=mock_instance)
    mock_client_class.return_value.__aexit__ = AsyncMock(return_value=None)
    return mock_instance


def _manager(audio: LoadedAudio | None = None) -> MagicMock:
    manager = MagicMock()
    manager.load_audio = AsyncMock(
        return_value=audio or LoadedAudio(data=b"ID3", mime_type="audio/mpeg", filename="a.mp3")
    )
    manager.replace_cover = AsyncMock(side_effect=lambda db, project, url: project)
    return manager


class TestPrompts(unittest.TestCase):
    def test_cover_prompt_truncates_analysis(self) -> None:
        prompt = ai.build_cover_prompt("a" * 500 + "TAIL")
        self.assertIn("a" * ai.COVER_PROMPT_ANALYSIS_CHARS, prompt)
        self.assertNotIn("a" * (ai.COVER_PROMPT_ANALYSIS_CHARS + 1), prompt)
        self.assertNotIn("TAIL", prompt)

    def test_fallback_url_is_encoded_and_seeded(self) -> None:
        settings = _settings()
        first = ai.fallback_cover_url("a cover / with spaces", settings)
        second = ai.fallback_cover_url("a cover / with spaces", settings)
        self.assertTrue(first.startswith(settings.COVER_FALLBACK_BASE_URL + "/a%20cover%20%2F%20with"))
        self.assertIn("seed=", first)
        self.assertNotEqual(first, second)


class TestChatCompletion(unittest.TestCase):
    def test_missing_key_fails_without_request(self) -> None:
        self.assertFalse(ai.is_configured(_settings(None)))
        with patch("app.services.ai.httpx.AsyncClient") as mock_client_class:
            with self.assertRaises(UpstreamFailure):
                asyncio.run(ai.analyze_audio(b"x", "audio/mpeg", "a.mp3", _settings(None)))
        mock_client_class.assert_not_called()

    @patch("app.services.ai.httpx.AsyncClient")
    def test_analysis_payload_and_reply(self, mock_client_class: MagicMock) -> None:
        post = AsyncMock(
            return_value=_mock_response(
                body={"choices": [{"message": {"content": "  LYRICS: la la  "}}]}
            )
        )
        _install_client(mock_client_class, post)
        text = asyncio.run(ai.analyze_audio(b"ID3", "audio/mpeg", "a.mp3", _settings()))
        self.assertEqual(text, "LYRICS: la la")

        url = post.call_args.args[0]
        payload = post.call_args.kwargs["json"]
        headers = post.call_args.kwargs["headers"]
        self.assertTrue(url.endswith("/chat/completions"))
        self.assertEqual(headers["Authorization"], "Bearer sk-test")
        self.assertEqual(payload["model"], _settings().OPENROUTER_ANALYSIS_MODEL)
        parts = payload["messages"][0]["content"]
        self.assertEqual(parts[0]["text"], ai.ANALYSIS_PROMPT)
        self.assertEqual(parts[1]["file"]["file_data"], "data:audio/mpeg;base64,SUQz")

    @patch("app.services.ai.httpx.AsyncClient")
    def test_non_200_is_upstream_failure(self, mock_client_class: MagicMock) -> None:
        _install_client(mock_client_class, AsyncMock(return_value=_mock_response(429, {})))
        with self.assertRaises(UpstreamFailure):
            asyncio.run(ai.analyze_audio(b"x", "audio/mpeg", "a.mp3", _settings()))

    @patch("app.services.ai.httpx.AsyncClient")
    def test_timeout_is_upstream_failure(self, mock_client_class: MagicMock) -> None:
        _install_client(mock_client_class, AsyncMock(side_effect=httpx.ReadTimeout("slow")))
        with self.assertRaises(UpstreamFailure):
            asyncio.run(ai.generate_cover_image("prompt", _settings()))

    @patch("app.services.ai.httpx.AsyncClient")
    def test_malformed_body_is_upstream_failure(self, mock_client_class: MagicMock) -> None:
        _install_client(mock_client_class, AsyncMock(return_value=_mock_response(body={"choices": []})))
        with self.assertRaises(UpstreamFailure):
            asyncio.run(ai.generate_cover_image("prompt", _settings()))

    @patch("app.services.ai.httpx.AsyncClient")
    def test_null_message_is_upstream_failure(self, mock_client_class: MagicMock) -> None:
        body = {"choices": [{"message": None}]}
        _install_client(mock_client_class, AsyncMock(return_value=_mock_response(body=body)))
        with self.assertRaises(UpstreamFailure):
            asyncio.run(ai.analyze_audio(b"x", "audio/mpeg", "a.mp3", _settings()))

    @patch("app.services.ai.httpx.AsyncClient")
    def test_string_message_is_upstream_failure(self, mock_client_class: MagicMock) -> None:
        body = {"choices": [{"message": "rate limited, try later"}]}
        _install_client(mock_client_class, AsyncMock(return_value=_mock_response(body=body)))
        with self.assertRaises(UpstreamFailure):
            asyncio.run(ai.generate_cover_image("prompt", _settings()))

    @patch("app.services.ai.httpx.AsyncClient")
    def test_cover_image_from_images_list(self, mock_client_class: MagicMock) -> None:
        message = {"content": "", "images": [{"image_url": {"url": "data:image/png;base64,AAAA"}}]}
        _install_client(
            mock_client_class,
            AsyncMock(return_value=_mock_response(body={"choices": [{"message": message}]})),
        )
        url = asyncio.run(ai.generate_cover_image("prompt", _settings()))
        self.assertEqual(url, "data:image/png;base64,AAAA")


class TestExtractImageUrl(unittest.TestCase):
    def test_content_parts(self) -> None:
        message = {"content": [{"type": "image_url", "image_url": {"url": "https://img.test/c.png"}}]}
        self.assertEqual(ai._extract_image_url(message), "https://img.test/c.png")

    def test_no_image(self) -> None:
        self.assertIsNone(ai._extract_image_url({"content": "only text"}))
        self.assertIsNone(ai._extract_image_url({"images": [{"image_url": {}}]}))


class TestAnalyzeProject(unittest.TestCase):
    def _project(self) -> Project:
        return Project(id=5, name="Song", audio_url="/uploads/audio/a.mp3")

    def test_without_key_stores_placeholder_in_both_fields(self) -> None:
        db = MagicMock()
        project = asyncio.run(analyze_project(db, _manager(), self._project(), _settings(None)))
        self.assertEqual(project.transcription, ai.PLACEHOLDER_ANALYSIS)
        self.assertEqual(project.emotional_analysis, ai.PLACEHOLDER_ANALYSIS)
        db.commit.assert_called_once()

    def test_ai_text_stored_in_both_fields(self) -> None:
        db = MagicMock()
        with patch("app.services.analysis.ai.analyze_audio", new=AsyncMock(return_value="vivid")) as call:
            project = asyncio.run(analyze_project(db, _manager(), self._project(), _settings()))
        self.assertEqual(project.transcription, "vivid")
        self.assertEqual(project.emotional_analysis, "vivid")
        self.assertEqual(call.call_args.args[:3], (b"ID3", "audio/mpeg", "a.mp3"))

    @patch("app.services.ai.httpx.AsyncClient")
    def test_null_ai_message_falls_back_to_placeholder(self, mock_client_class: MagicMock) -> None:
        body = {"choices": [{"message": None}]}
        _install_client(mock_client_class, AsyncMock(return_value=_mock_response(body=body)))
        db = MagicMock()
        with self.assertLogs("app.services.analysis", level="WARNING"):
            project = asyncio.run(analyze_project(db, _manager(), self._project(), _settings()))
        self.assertEqual(project.transcription, ai.PLACEHOLDER_ANALYSIS)
        self.assertEqual(project.emotional_analysis, ai.PLACEHOLDER_ANALYSIS)
        db.commit.assert_called_once()

    def test_missing_audio_is_an_error(self) -> None:
        db = MagicMock()
        manager = _manager()
        manager.load_audio = AsyncMock(side_effect=AssetMissing("Audio file not found on server"))
        with self.assertRaises(AssetMissing):
            asyncio.run(analyze_project(db, manager, self._project(), _settings()))
        db.commit.assert_not_called()


class TestGenerateCover(unittest.TestCase):
    def _project(self, analysis: str | None = "Neon city at night") -> Project:
        return Project(
            id=5,
            name="Song",
            audio_url="/uploads/audio/a.mp3",
            transcription=analysis,
            emotional_analysis=analysis,
        )

    def test_requires_analysis(self) -> None:
        manager = _manager()
        with self.assertRaises(ValidationFailed):
            asyncio.run(generate_cover(MagicMock(), manager, self._project(None), _settings()))
        manager.replace_cover.assert_not_called()

    def test_generated_image_becomes_cover(self) -> None:
        manager = _manager()
        with patch(
            "app.services.analysis.ai.generate_cover_image",
            new=AsyncMock(return_value="data:image/png;base64,AAAA"),
        ):
            asyncio.run(generate_cover(MagicMock(), manager, self._project(), _settings()))
        self.assertEqual(manager.replace_cover.call_args.args[2], "data:image/png;base64,AAAA")

    def test_ai_failure_uses_placeholder_service(self) -> None:
        manager = _manager()
        settings = _settings(None)
        asyncio.run(generate_cover(MagicMock(), manager, self._project(), settings))
        source_url = manager.replace_cover.call_args.args[2]
        self.assertTrue(source_url.startswith(settings.COVER_FALLBACK_BASE_URL + "/"))
        self.assertIn("Neon%20city%20at%20night", source_url)


if __name__ == "__main__":
    unittest.main()
