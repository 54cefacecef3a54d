"""
Whisper Router - speech-to-text for recorded voice notes.
"""

import logging

from fastapi import APIRouter, Depends, File, UploadFile

from ..config import Settings, get_settings
from ..dependencies import get_transcriber
from ..ingestion.transcription import Transcriber
from ..ingestion.uploads import read_upload
from ..models import TranscriptionResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/whisper", tags=["whisper"])


@router.post("/transcribe", response_model=TranscriptionResponse)
async def transcribe_audio(
    audio: UploadFile | None = File(None),
    transcriber: Transcriber = Depends(get_transcriber),
    settings: Settings = Depends(get_settings),
):
    """Transcribe an uploaded audio clip."""
    data = await read_upload(audio, settings.audio_max_bytes, label="audio file")
    text = await transcriber.transcribe(data, filename=audio.filename, content_type=audio.content_type)
    return TranscriptionResponse(transcription=text)
