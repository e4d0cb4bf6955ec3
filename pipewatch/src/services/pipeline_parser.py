"""
Tracked pipelines file parser and validator.
"""

import yaml
from typing import List, Dict, Any, Optional

from pipewatch.src.services.errors import PipelineConfigError
from pipewatch.src.services.github import parse_repository_url

def parse_pipelines_config(yaml_content: str) -> List[Dict[str, Any]]:
    """Parse tracked pipelines YAML configuration from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise PipelineConfigError(f"Invalid YAML: {e}")

    return validate_config(config)

def load_pipelines_file(path: str) -> List[Dict[str, Any]]:
    """Read and validate a tracked pipelines file."""
    try:
        with open(path, "r") as f:
            content = f.read()
    except OSError as e:
        raise PipelineConfigError(f"Cannot read pipelines file {path}: {e}")
    return parse_pipelines_config(content)

def parse_pipelines_dict(config: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Validate tracked pipelines configuration from dict."""
    return validate_config(config)

def validate_config(config: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Validate the top-level structure."""
    if not config:
        raise PipelineConfigError("Empty pipelines configuration")

    if not isinstance(config, dict):
        raise PipelineConfigError("Pipelines configuration must be a dictionary")

    if "pipelines" not in config:
        raise PipelineConfigError("Configuration must have 'pipelines' defined")

    entries = config["pipelines"]
    if not isinstance(entries, list):
        raise PipelineConfigError("'pipelines' must be a list")

    return [validate_entry(entry, i) for i, entry in enumerate(entries)]

def validate_entry(entry: Dict[str, Any], index: int) -> Dict[str, Any]:
    """Validate a single tracked pipeline."""
    if not isinstance(entry, dict):
        raise PipelineConfigError(f"Pipeline {index} must be a dictionary")

    repository_url = entry.get("repository")
    owner = entry.get("owner")
    repo = entry.get("repo")

    if repository_url is not None and not isinstance(repository_url, str):
        raise PipelineConfigError(f"Pipeline {index} 'repository' must be a string")

    if not (owner and repo):
        locator = parse_repository_url(repository_url)
        if locator is None:
            raise PipelineConfigError(
                f"Pipeline {index} needs 'owner' and 'repo' or a GitHub 'repository' URL"
            )
        owner, repo = locator

    if not isinstance(owner, str) or not isinstance(repo, str):
        raise PipelineConfigError(f"Pipeline {index} 'owner' and 'repo' must be strings")

    workflow_id = entry.get("workflow_id")
    if workflow_id is not None and not isinstance(workflow_id, (str, int)):
        raise PipelineConfigError(f"Pipeline {index} 'workflow_id' must be a string or integer")

    workflow_name = entry.get("workflow_name")
    default_name = f"{repo} - {workflow_name}" if workflow_name else repo
    name = entry.get("name", default_name)
    if not isinstance(name, str) or not name.strip():
        raise PipelineConfigError(f"Pipeline {index} 'name' must be a non-empty string")

    active = entry.get("active", True)
    if not isinstance(active, bool):
        raise PipelineConfigError(f"Pipeline {index} 'active' must be a boolean")

    return {
        "name": name.strip(),
        "repository_url": repository_url or f"https://github.com/{owner}/{repo}",
        "owner": owner,
        "repo": repo,
        "workflow_id": str(workflow_id) if workflow_id is not None else None,
        "workflow_name": workflow_name,
        "active": active,
    }
