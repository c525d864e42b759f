#!/usr/bin/env python
"""Validate setup - check dependencies, configuration and model services."""
import sys
import asyncio
from pathlib import Path

# Color codes for terminal output
GREEN = "\033[92m"
RED = "\033[91m"
YELLOW = "\033[93m"
BLUE = "\033[94m"
RESET = "\033[0m"

def print_success(msg):
    print(f"{GREEN}✓{RESET} {msg}")

def print_error(msg):
    print(f"{RED}✗{RESET} {msg}")

def print_info(msg):
    print(f"{BLUE}ℹ{RESET} {msg}")

def print_warning(msg):
    print(f"{YELLOW}⚠{RESET} {msg}")

def print_section(title):
    print(f"\n{BLUE}{'='*60}{RESET}")
    print(f"{BLUE}{title:^60}{RESET}")
    print(f"{BLUE}{'='*60}{RESET}\n")

async def main():
    print_section("DocQA - Setup Validation")

    errors = []
    warnings = []

    # 1. Python version check
    print_section("1. Python Environment")
    python_version = f"{sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    print_info(f"Python version: {python_version}")
    if sys.version_info >= (3, 10):
        print_success("Python version >= 3.10")
    else:
        print_error("Python version < 3.10 (required)")
        errors.append("Python version too old")

    in_venv = hasattr(sys, 'real_prefix') or (hasattr(sys, 'base_prefix') and sys.base_prefix != sys.prefix)
    if in_venv:
        print_success("Running in virtual environment")
    else:
        print_warning("Not running in virtual environment (recommended)")
        warnings.append("Not in venv")

    # 2. Import core dependencies
    print_section("2. Core Dependencies")

    dependencies = [
        ("quart", "Quart web framework"),
        ("hypercorn", "Hypercorn ASGI server"),
        ("httpx", "HTTP client"),
        ("numpy", "Vector math"),
        ("pydantic", "Data validation"),
        ("structlog", "Structured logging"),
        ("pypdf", "PDF text extraction"),
        ("docx", "DOCX text extraction"),
        ("pytest", "Testing framework"),
    ]

    for module_name, description in dependencies:
        try:
            __import__(module_name)
            print_success(f"{description:30} ({module_name})")
        except ImportError as e:
            print_error(f"{description:30} ({module_name}) - {e}")
            errors.append(f"Missing: {module_name}")

    # 3. Test configuration
    print_section("3. Configuration")

    try:
        sys.path.insert(0, str(Path(__file__).parent.parent))
        from docqa import config

        print_success("Config loaded successfully")
        print_info(f"  LLM provider: {config.LLM_PROVIDER}")
        print_info(f"  Chat model: {config.CHAT_MODEL}")
        print_info(f"  Embedding model: {config.EMBEDDING_MODEL}")
        print_info(f"  Ollama URL: {config.OLLAMA_BASE_URL}")
        print_info(f"  Chunk budget: {config.CHUNK_MAX_TOKENS} tokens")
        print_info(f"  Snapshot: {config.SNAPSHOT_PATH}")

        for label, directory in (("Data", config.DATA_DIR), ("Uploads", config.UPLOADS_DIR)):
            if directory.exists():
                print_success(f"{label} directory exists: {directory}")
            else:
                print_error(f"{label} directory missing: {directory}")
                errors.append(f"{label} directory missing")

        if config.LLM_PROVIDER == "groq" and not config.GROQ_API_KEY:
            print_error("LLM_PROVIDER is groq but GROQ_API_KEY is not set")
            errors.append("Missing GROQ_API_KEY")

    except Exception as e:
        print_error(f"Failed to load config: {e}")
        errors.append("Config loading failed")
        return errors, warnings

    # 4. Test Ollama connection
    print_section("4. Ollama Service")

    import httpx

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.get(f"{config.OLLAMA_BASE_URL}/api/tags")
            response.raise_for_status()
            data = response.json()

            print_success(f"Ollama service running at {config.OLLAMA_BASE_URL}")

            models = {m['name'] for m in data.get('models', [])}
            base_names = {m.split(":")[0] for m in models}
            print_info(f"Found {len(models)} models installed")

            required = [config.EMBEDDING_MODEL]
            if config.LLM_PROVIDER == "ollama":
                required.append(config.CHAT_MODEL)

            for model in required:
                if model in models or model in base_names:
                    print_success(f"Model available: {model}")
                else:
                    print_error(f"Model missing: {model}")
                    print_info(f"  Run: ollama pull {model}")
                    errors.append(f"Missing model: {model}")

    except httpx.ConnectError:
        print_error("Cannot connect to Ollama service")
        print_info("  Make sure Ollama is running: ollama serve")
        errors.append("Ollama not running")
    except Exception as e:
        print_error(f"Ollama check failed: {e}")
        errors.append(f"Ollama error: {e}")

    # 5. Test the embedding endpoint with a simple request
    print_section("5. Embedding API Test")

    try:
        from docqa.llm_client import ollama_client

        embedding = await ollama_client.embed("test")
        if embedding:
            print_success(f"Embedding API working (dimension: {len(embedding)})")
        else:
            print_error("Embedding response was empty")
            errors.append("Embedding API issue")

    except Exception as e:
        print_error(f"Embedding API test failed: {e}")
        errors.append(f"API test failed: {e}")

    # 6. Generation provider
    print_section("6. Generation Provider")

    try:
        from docqa.llm_client import get_generator

        generator = get_generator()
        if generator is None:
            print_warning("Generation disabled; answers will quote retrieved text")
            warnings.append("No LLM provider")
        elif await generator.is_available():
            print_success(f"Generator reachable: {generator.get_info()}")
        else:
            print_warning("Generator not reachable; answers will fall back to retrieved text")
            warnings.append("Generator unavailable")

    except Exception as e:
        print_error(f"Generator check failed: {e}")
        errors.append(f"Generator error: {e}")

    # 7. Summary
    print_section("Summary")

    if not errors:
        print_success("All checks passed! ✨")
        print_info("  Start the server: hypercorn docqa.main:app --bind 0.0.0.0:5000")
    else:
        print_error(f"Found {len(errors)} error(s):")
        for i, error in enumerate(errors, 1):
            print(f"  {i}. {error}")

    if warnings:
        print_warning(f"\nFound {len(warnings)} warning(s):")
        for i, warning in enumerate(warnings, 1):
            print(f"  {i}. {warning}")

    print()
    return errors, warnings

if __name__ == "__main__":
    errors, warnings = asyncio.run(main())
    sys.exit(1 if errors else 0)
