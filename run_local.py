import uvicorn
import os

# In-memory bucket and mock transcriber, no Google credentials needed
os.environ.setdefault("USE_MOCK_STORAGE", "1")
os.environ.setdefault("GOOGLE_CLOUD_PROJECT", "recordings-viewer-local")

if __name__ == "__main__":
    # Reload=True allows you to see changes immediately
    uvicorn.run("recordings_viewer.main:app", host="0.0.0.0", port=8000, reload=True)
