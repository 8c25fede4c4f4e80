import asyncio
import sys
import webbrowser
from pathlib import Path

import vrmreduce
from vrmreduce.preview import PreviewServer


def main():
    source = Path(sys.argv[1])
    doc = vrmreduce.load(source.read_bytes())
    server = PreviewServer(doc, port=8080)

    url = f"http://localhost:{server.port}/stats"
    print(f"🌐 Preview running at {url}")
    print("  POST /reduce to reduce, GET /model.vrm to download (Ctrl+C to stop)")
    webbrowser.open(url)

    try:
        asyncio.run(server.start())
    except KeyboardInterrupt:
        print("\nStopped")


if __name__ == "__main__":
    main()
