"""
Example: load a model, generate once, and hand everything back.

This example walks through the full ownership protocol of the Python API:
the handle and the result buffer are both released explicitly.
"""

import logging

from ccandle_lite import generate, load_model, release_buffer, release_model

logging.basicConfig(level=logging.INFO)

print("Loading model...")
handle = load_model("mistral")
print(f"Loaded: {handle}")

prompt = "write a haiku about a redpanda"
buffer = generate(handle, prompt, 100)
try:
    print(f"\nfinal resp: {buffer.text()}")
finally:
    release_buffer(buffer)

release_model(handle)
