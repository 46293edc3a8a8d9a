"""
docflow - turn documents into polished Markdown through a chain of LLM agents.

Usage:
    from docflow.extract import extract_file
    from docflow.workflow import run_pipeline

    doc = extract_file("lecture.pdf")
    state = await run_pipeline(agents, doc.text, target)
    print(state.final_artifact)
"""

__version__ = "0.1.0"

# Bump when the storage schema changes
FORMAT_VERSION = "1"
