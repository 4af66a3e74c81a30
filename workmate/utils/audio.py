"""Speech and lip-sync generation for the avatar.

Pipeline per message: TTS (mp3) -> ffmpeg (wav) -> rhubarb (JSON mouth cues).
Every step is best effort. A message whose audio cannot be produced is
still sent, with empty audio and an empty transcript.
"""

import asyncio
import base64
import json
import logging
import os
import platform
from typing import Dict, Any, List

import aiofiles

logger = logging.getLogger(__name__)

EMPTY_LIPSYNC = {"mouthCues": []}


class AudioService:
    """Attaches base64 audio and a lip-sync transcript to assistant messages."""

    def __init__(self, llm_client, config):
        self.llm = llm_client
        self.enabled = config.audio_enabled
        self.output_dir = config.audio_dir
        self.tts_model = config.tts_model
        self.voice = config.tts_voice
        self.rhubarb_path = config.rhubarb_path
        self.ffmpeg_path = config.ffmpeg_path
        self.command_timeout = 60

    def _paths(self, base_name: str) -> Dict[str, str]:
        return {
            ext: os.path.join(self.output_dir, f"{base_name}.{ext}")
            for ext in ("mp3", "wav", "json")
        }

    async def _run(self, *args: str):
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(process.communicate(), timeout=self.command_timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            raise RuntimeError(f"{os.path.basename(args[0])} timed out after {self.command_timeout}s")
        if process.returncode != 0:
            raise RuntimeError(f"{os.path.basename(args[0])} exited with {process.returncode}: {stderr.decode(errors='replace')[:200]}")

    def _rhubarb_command(self, wav_path: str, json_path: str) -> List[str]:
        command = [self.rhubarb_path, "-f", "json", "-o", json_path, wav_path, "-r", "phonetic"]
        if platform.system() == "Darwin" and platform.machine() == "arm64":
            # The rhubarb release binary is x86_64 only
            command = ["arch", "-x86_64"] + command
        return command

    async def generate_lipsync(self, base_name: str):
        paths = self._paths(base_name)
        await self._run(self.ffmpeg_path, "-y", "-loglevel", "error", "-i", paths["mp3"], paths["wav"])
        await self._run(*self._rhubarb_command(paths["wav"], paths["json"]))

    async def _read_audio(self, path: str) -> str:
        try:
            async with aiofiles.open(path, "rb") as f:
                return base64.b64encode(await f.read()).decode("ascii")
        except OSError as e:
            logger.warning(f"Could not read audio file {path}: {e}")
            return ""

    async def _read_transcript(self, path: str) -> Dict[str, Any]:
        try:
            async with aiofiles.open(path, "r", encoding="utf-8") as f:
                return json.loads(await f.read())
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read transcript {path}: {e}")
            return dict(EMPTY_LIPSYNC)

    async def generate_message_audio(self, message: Dict[str, Any], prefix: str = "message", index: int = 0) -> Dict[str, Any]:
        """Generate audio and lip-sync for one message, in place."""
        if not self.enabled:
            return message

        base_name = f"{prefix}_{index}"
        paths = self._paths(base_name)
        text = message.get("text", "")
        try:
            os.makedirs(self.output_dir, exist_ok=True)
            logger.info(f"🎵 Generating audio for {base_name}: \"{text[:50]}\"")
            audio = await self.llm.synthesize_speech(text, model=self.tts_model, voice=self.voice)
            async with aiofiles.open(paths["mp3"], "wb") as f:
                await f.write(audio)
            await self.generate_lipsync(base_name)
            message["audio"] = await self._read_audio(paths["mp3"])
            message["lipsync"] = await self._read_transcript(paths["json"])
        except Exception as e:
            logger.error(f"Error generating audio for {base_name}: {e}")
            message.setdefault("audio", "")
            message.setdefault("lipsync", dict(EMPTY_LIPSYNC))
        return message

    async def generate_messages_audio(self, messages: List[Dict[str, Any]], prefix: str = "message") -> List[Dict[str, Any]]:
        for index, message in enumerate(messages):
            await self.generate_message_audio(message, prefix, index)
        return messages

    async def load_or_generate_audio(self, messages: List[Dict[str, Any]], prefix: str) -> List[Dict[str, Any]]:
        """Reuse audio files from a previous run, generating them if any is missing."""
        for index, message in enumerate(messages):
            paths = self._paths(f"{prefix}_{index}")
            if not (os.path.exists(paths["mp3"]) and os.path.exists(paths["json"])):
                logger.info(f"📢 Generating new audio for {prefix}")
                return await self.generate_messages_audio(messages, prefix)

        for index, message in enumerate(messages):
            paths = self._paths(f"{prefix}_{index}")
            message["audio"] = await self._read_audio(paths["mp3"])
            message["lipsync"] = await self._read_transcript(paths["json"])
        logger.info(f"📂 Loaded existing audio files for {prefix}")
        return messages
