"""Deterministic placeholder data for bridge operations."""

from __future__ import annotations

from typing import Any

BRIDGE_SETUP_HINT = "Start the local bridge server for real data."


def demo_analysis(project_path: str) -> dict[str, Any]:
    return {
        "path": project_path,
        "type": "Demo Analysis",
        "language": "Multiple",
        "framework": "Modern Web Stack",
        "files": ["src/", "package.json", "README.md", "tsconfig.json"],
        "dependencies": {
            "react": "^18.0.0",
            "next": "^14.0.0",
            "typescript": "^5.0.0",
        },
        "structure": {
            "src/": {
                "components/": {"type": "directory"},
                "pages/": {"type": "directory"},
                "utils/": {"type": "directory"},
            },
            "package.json": {"type": "file", "size": 1024},
            "README.md": {"type": "file", "size": 2048},
        },
        "note": f"This is simulated demo data. {BRIDGE_SETUP_HINT}",
    }


def demo_file_list(dir_path: str) -> dict[str, Any]:
    base = dir_path.rstrip("/")
    return {
        "files": [
            {"name": "src", "type": "directory", "path": f"{base}/src"},
            {"name": "package.json", "type": "file", "path": f"{base}/package.json", "size": 1024},
            {"name": "README.md", "type": "file", "path": f"{base}/README.md", "size": 2048},
            {"name": "tsconfig.json", "type": "file", "path": f"{base}/tsconfig.json", "size": 512},
        ],
        "path": dir_path,
        "note": f"Simulated demo file listing. {BRIDGE_SETUP_HINT}",
    }


def demo_file_content(file_path: str) -> dict[str, Any]:
    content = "\n".join(
        [
            f"// Demo content for {file_path}",
            "This is simulated file content.",
            "Start the local bridge server to read real files.",
        ]
    )
    return {
        "content": content,
        "path": file_path,
        "note": f"Simulated demo content. {BRIDGE_SETUP_HINT}",
    }
