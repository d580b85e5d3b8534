import logging

from fastapi import APIRouter, Depends, HTTPException

from recordings_viewer.dependencies import get_transcription_bridge, to_http_exception
from recordings_viewer.errors import ViewerError
from recordings_viewer.services.transcription import TranscriptionBridge
from recordings_viewer.util_models import AudioRole, TranscribeRequest, TranscribeResponse

router = APIRouter()
logger = logging.getLogger("recordings_viewer.transcribe")


@router.post("/transcribe", response_model=TranscribeResponse)
def transcribe(req: TranscribeRequest, bridge: TranscriptionBridge = Depends(get_transcription_bridge)):
    """
    Transcribe one audio track of a session and store its caption document.
    Blocking call; FastAPI runs it in the threadpool.
    """
    if not req.sessionId or not req.audioType:
        raise HTTPException(status_code=400, detail="Missing sessionId or audioType")
    if not req.org or not req.device:
        raise HTTPException(status_code=400, detail="Missing org or device parameter")
    try:
        audio_role = AudioRole(req.audioType)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail="Invalid audioType. Must be one of: screen-audio, audio-raw, audio-clean",
        )

    logger.info(f"[transcribe] {req.org}/{req.device}/{req.sessionId} {audio_role.value}")
    try:
        outcome = bridge.transcribe(req.org, req.device, req.sessionId, audio_role)
    except ViewerError as e:
        raise to_http_exception(e)

    return TranscribeResponse(
        success=True,
        vttKey=outcome.vttKey,
        text=outcome.text,
        segmentCount=outcome.segmentCount,
    )
