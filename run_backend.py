import sys
import asyncio
import uvicorn

# WIN32 FIX: Force WindowsProactorEventLoopPolicy for Playwright
# This MUST be done before any async loop is created.
if sys.platform == 'win32':
    asyncio.set_event_loop_policy(asyncio.WindowsProactorEventLoopPolicy())

if __name__ == "__main__":
    print("Starting NAGS Lookup API...")
    # reload spawns a subprocess that resets the event loop policy
    uvicorn.run("nags_lookup.main:app", host="127.0.0.1", port=8000, reload=False)
