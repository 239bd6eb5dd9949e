"""
Built-in model registry.

Order matters: it is the catalog's construction order, so earlier entries win
on duplicate canonical ids and the provider list order is the failover order.
`upstream` maps a provider kind to that provider's own model id; upstream ids
are also registered as aliases.
"""

BUILTIN_MODELS: list[dict] = [
    # GLM (Zhipu AI)
    {
        "id": "glm-4.7",
        "providers": ["iflow", "ollama_cloud", "nvidia_nim"],
        "upstream": {"nvidia_nim": "z-ai/glm4.7"},
        "meta": {
            "context_length": 204800,
            "output_limit": 131072,
            "knowledge_cutoff": "2025-04",
            "release_date": "2025-12-22",
            "reasoning": True,
            "tool_call": True,
            "vision": False,
        },
    },
    {
        "id": "glm-4.6",
        "providers": ["iflow", "ollama_cloud"],
        "meta": {
            "context_length": 204800,
            "output_limit": 131072,
            "release_date": "2025-09-30",
            "reasoning": True,
            "tool_call": True,
        },
    },
    {"id": "glm-4.5", "providers": ["iflow"], "meta": {"context_length": 131072}},
    {"id": "glm-5", "providers": ["ollama_cloud"], "meta": {"context_length": 202752}},
    # MiniMax
    {
        "id": "minimax-m2.1",
        "providers": ["iflow", "ollama_cloud", "nvidia_nim"],
        "upstream": {"nvidia_nim": "minimaxai/minimax-m2.1"},
        "meta": {"context_length": 204800, "reasoning": True, "tool_call": True},
    },
    {
        "id": "minimax-m2",
        "providers": ["iflow", "ollama_cloud", "nvidia_nim"],
        "upstream": {"nvidia_nim": "minimaxai/minimax-m2"},
        "meta": {"context_length": 196608, "reasoning": True, "tool_call": True},
    },
    # Qwen
    {
        "id": "qwen3-coder-plus",
        "providers": ["iflow", "qwen_code"],
        "meta": {"context_length": 256000, "output_limit": 64000, "tool_call": True},
    },
    {
        "id": "qwen3-coder-flash",
        "providers": ["qwen_code"],
        "meta": {"context_length": 1000000, "tool_call": True},
    },
    {"id": "qwen3-max", "providers": ["iflow"], "meta": {"context_length": 256000}},
    {
        "id": "qwen-vl-max",
        "providers": ["iflow"],
        "aliases": ["qwen-vl-max-latest"],
        "meta": {"vision": True},
    },
    # Kimi
    {
        "id": "kimi-k2",
        "providers": ["iflow", "ollama_cloud", "nvidia_nim"],
        "upstream": {"ollama_cloud": "kimi-k2:1t", "nvidia_nim": "moonshotai/kimi-k2-instruct"},
        "meta": {"context_length": 131072, "tool_call": True},
    },
    {
        "id": "kimi-k2-thinking",
        "providers": ["iflow", "ollama_cloud", "nvidia_nim"],
        "upstream": {"nvidia_nim": "moonshotai/kimi-k2-thinking"},
        "meta": {"context_length": 262144, "reasoning": True, "tool_call": True},
    },
    {
        "id": "kimi-k2.5",
        "providers": ["iflow", "ollama_cloud", "nvidia_nim"],
        "upstream": {"nvidia_nim": "moonshotai/kimi-k2.5"},
        "meta": {"context_length": 262144, "reasoning": True, "vision": True},
    },
    # DeepSeek
    {
        "id": "deepseek-v3.2",
        "providers": ["iflow", "ollama_cloud", "nvidia_nim"],
        "upstream": {"nvidia_nim": "deepseek-ai/deepseek-v3.2"},
        "meta": {"context_length": 163840, "reasoning": True, "tool_call": True},
    },
    {
        "id": "deepseek-v3.1",
        "providers": ["iflow", "nvidia_nim"],
        "upstream": {"nvidia_nim": "deepseek-ai/deepseek-v3.1"},
        "meta": {"context_length": 131072},
    },
    {"id": "deepseek-r1", "providers": ["iflow"], "meta": {"reasoning": True}},
    # Gemini
    {
        "id": "gemini-2.5-pro",
        "providers": ["gemini_cli"],
        "meta": {"context_length": 1048576, "reasoning": True, "vision": True},
    },
    {
        "id": "gemini-2.5-flash",
        "providers": ["antigravity", "gemini_cli"],
        "meta": {"context_length": 1048576, "vision": True},
    },
    {
        "id": "gemini-3-flash-preview",
        "providers": ["antigravity", "gemini_cli", "ollama_cloud"],
        "aliases": ["gemini-3-flash-preview-latest"],
        "meta": {"context_length": 1048576, "reasoning": True, "vision": True},
    },
    {
        "id": "gemini-3-pro-high",
        "providers": ["antigravity"],
        "aliases": ["gemini-3-pro"],
        "meta": {"context_length": 1048576, "reasoning": True, "vision": True},
    },
    {
        "id": "gemini-3-pro-preview",
        "providers": ["antigravity", "gemini_cli"],
        "meta": {"context_length": 1048576, "reasoning": True, "vision": True},
    },
    # Claude
    {
        "id": "claude-sonnet-4-5",
        "providers": ["antigravity", "copilot", "kiro"],
        "upstream": {"copilot": "claude-sonnet-4.5", "kiro": "CLAUDE_SONNET_4_5_20250929_V1_0"},
        "meta": {"context_length": 200000, "reasoning": True, "tool_call": True, "vision": True},
    },
    {
        "id": "claude-opus-4-5",
        "providers": ["antigravity", "copilot"],
        "upstream": {"copilot": "claude-opus-4.5"},
        "meta": {"context_length": 200000, "reasoning": True, "tool_call": True, "vision": True},
    },
    {
        "id": "claude-opus-4-6",
        "providers": ["antigravity", "copilot"],
        "aliases": ["claude-opus-4.6"],
        "meta": {"context_length": 200000, "reasoning": True, "tool_call": True, "vision": True},
    },
    {
        "id": "claude-haiku-4-5",
        "providers": ["copilot", "kiro"],
        "upstream": {"copilot": "claude-haiku-4.5"},
        "meta": {"context_length": 200000, "tool_call": True},
    },
    # OpenAI
    {
        "id": "gpt-5.2-codex",
        "providers": ["codex", "copilot"],
        "meta": {"context_length": 400000, "reasoning": True, "tool_call": True},
    },
    {
        "id": "gpt-5.1-codex-mini",
        "providers": ["codex", "copilot"],
        "meta": {"context_length": 400000, "reasoning": True, "tool_call": True},
    },
    {"id": "gpt-4.1", "providers": ["copilot"], "meta": {"context_length": 1047576}},
    {
        "id": "gpt-oss-120b-medium",
        "providers": ["antigravity", "ollama_cloud", "nvidia_nim"],
        "aliases": ["gpt-oss-120b"],
        "upstream": {"ollama_cloud": "gpt-oss:120b", "nvidia_nim": "openai/gpt-oss-120b"},
        "meta": {"context_length": 131072, "reasoning": True, "tool_call": True},
    },
    # Ollama Cloud only
    {
        "id": "qwen3-coder-480b",
        "providers": ["ollama_cloud"],
        "upstream": {"ollama_cloud": "qwen3-coder:480b"},
    },
    {
        "id": "devstral-2-123b",
        "providers": ["ollama_cloud", "nvidia_nim"],
        "upstream": {
            "ollama_cloud": "devstral-2:123b",
            "nvidia_nim": "mistralai/devstral-2-123b-instruct-2512",
        },
    },
    # NVIDIA NIM only
    {
        "id": "nim-llama-3.1-70b-instruct",
        "providers": ["nvidia_nim"],
        "aliases": ["meta/llama-3.1-70b-instruct"],
    },
    {
        "id": "meta-llama-3.3-70b-instruct",
        "providers": ["nvidia_nim"],
        "aliases": ["meta/llama-3.3-70b-instruct"],
    },
    {
        "id": "qwen-qwq-32b",
        "providers": ["nvidia_nim"],
        "aliases": ["qwen/qwq-32b"],
    },
    # OpenRouter
    {
        "id": "openrouter-free",
        "providers": ["openrouter"],
        "upstream": {"openrouter": "openrouter/free"},
        "description": "OpenRouter's free-model router",
    },
]

__all__ = ["BUILTIN_MODELS"]
