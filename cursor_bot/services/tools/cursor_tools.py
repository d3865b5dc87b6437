"""Cursor background agent tools - repositories, tasks, follow-ups, models."""

import logging
from typing import Any

from cursor_bot.models.task import TaskStatus
from cursor_bot.services.integrations.cursor import agent_web_url
from cursor_bot.services.tools.base import BaseTool, ToolDefinition, ToolParameter

logger = logging.getLogger(__name__)


class CursorListReposTool(BaseTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="cursor_repos_list",
            description="List GitHub repositories the Cursor account can run background agents in.",
        )

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        try:
            repos = await self.context.cursor.list_repositories()
        except Exception as e:
            return {"error": f"Failed to get repos: {e}"}

        allowed = self.context.allowed_repos
        return {
            "repos": [
                {
                    "name": r.name,
                    "owner": r.owner,
                    "url": r.repository,
                    "allowed": not allowed or r.repository in allowed,
                }
                for r in repos
            ]
        }


class CursorStartTaskTool(BaseTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="cursor_task_start",
            description=(
                "Start a new Cursor background agent task in a repository. "
                "Images the user sent in the last few minutes are attached automatically."
            ),
            parameters=[
                ToolParameter(name="repo_url", type="string", description="Repository URL, e.g. https://github.com/owner/repo"),
                ToolParameter(name="task_description", type="string", description="Detailed task description for the coding agent"),
                ToolParameter(
                    name="branch", type="string",
                    description="Base branch or ref (default: the repository's default branch)",
                    required=False,
                ),
                ToolParameter(
                    name="model", type="string",
                    description="Model name from cursor_models_list. Omit to let Cursor choose.",
                    required=False,
                ),
            ],
        )

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        ctx = self.context
        repo_url = kwargs["repo_url"]
        description = kwargs["task_description"]
        branch = kwargs.get("branch") or None
        model = kwargs.get("model") or None

        if ctx.allowed_repos and repo_url not in ctx.allowed_repos:
            return {
                "error": f"Repository {repo_url} is not in allowed list. "
                         f"Allowed repos: {', '.join(ctx.allowed_repos)}"
            }

        images = ctx.image_cache.read(ctx.user_id, ctx.chat_id)
        try:
            agent = await ctx.cursor.create_agent(
                text=description,
                repository=repo_url,
                images=images or None,
                model=model,
                ref=branch,
            )
        except Exception as e:
            return {"error": f"Failed to start task: {e}"}

        if images:
            ctx.image_cache.clear(ctx.user_id, ctx.chat_id)

        status = agent.status or TaskStatus.CREATING.value
        task = ctx.store.create_task(
            user_id=ctx.user_id,
            chat_id=ctx.chat_id,
            composer_id=agent.id,
            repo_url=repo_url,
            task_description=description,
            status=status,
        )
        logger.info(f"Started task {agent.id} in {repo_url} with {len(images)} images")

        return {
            "success": True,
            "taskId": task.id,
            "composerId": agent.id,
            "status": status,
            "url": agent_web_url(agent.id),
            "imagesAttached": len(images),
            "message": f"Task started in {repo_url}"
                       + (f" with model {model}" if model else "")
                       + f": {description}",
        }


class CursorTaskStatusTool(BaseTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="cursor_task_status",
            description="Get the current status of a background agent task by its id.",
            parameters=[
                ToolParameter(name="composer_id", type="string", description="Background agent id (bc-...)"),
            ],
        )

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        composer_id = kwargs["composer_id"]
        try:
            agent = await self.context.cursor.get_agent(composer_id)
        except Exception as e:
            return {"error": f"Failed to get task status: {e}"}

        task = self.context.store.get_task_by_composer_id(composer_id)
        if task and agent.status and task.status != agent.status:
            self.context.store.update_task_status(task.id, agent.status)  # type: ignore

        return {
            "composerId": agent.id,
            "status": agent.status,
            "name": agent.name,
            "repoUrl": agent.source.get("repository"),
            "branchName": agent.target.get("branchName"),
            "prUrl": agent.target.get("prUrl"),
            "summary": agent.summary,
            "createdAt": agent.created_at,
            "url": agent_web_url(agent.id),
        }


class CursorActiveTasksTool(BaseTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="cursor_tasks_active",
            description="List active (not finished, failed, expired or cancelled) tasks for the current user in this chat.",
        )

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        try:
            tasks = self.context.store.get_active_tasks(self.context.user_id, self.context.chat_id)
        except Exception as e:
            return {"error": f"Failed to load active tasks: {e}"}

        return {
            "tasks": [
                {
                    "id": t.id,
                    "composerId": t.composer_id,
                    "repoUrl": t.repo_url,
                    "description": t.task_description,
                    "status": t.status,
                    "createdAt": t.created_at.isoformat(),
                }
                for t in tasks
            ]
        }


class CursorStopTaskTool(BaseTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="cursor_task_stop",
            description="Stop and delete a running background agent task.",
            parameters=[
                ToolParameter(name="composer_id", type="string", description="Background agent id to stop"),
            ],
        )

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        composer_id = kwargs["composer_id"]
        try:
            await self.context.cursor.delete_agent(composer_id)
        except Exception as e:
            return {"error": f"Failed to stop task: {e}"}

        task = self.context.store.get_task_by_composer_id(composer_id)
        if task:
            self.context.store.update_task_status(task.id, TaskStatus.CANCELLED.value)  # type: ignore

        return {"success": True, "message": f"Task {composer_id} has been stopped"}


class CursorTaskFollowupTool(BaseTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="cursor_task_followup",
            description=(
                "Send an additional instruction to a running background agent task. "
                "Recently sent images are attached automatically."
            ),
            parameters=[
                ToolParameter(name="composer_id", type="string", description="Background agent id"),
                ToolParameter(name="text", type="string", description="Follow-up instruction"),
            ],
        )

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        ctx = self.context
        composer_id = kwargs["composer_id"]
        images = ctx.image_cache.read(ctx.user_id, ctx.chat_id)
        try:
            await ctx.cursor.add_followup(composer_id, kwargs["text"], images=images or None)
        except Exception as e:
            return {"error": f"Failed to add follow-up: {e}"}

        if images:
            ctx.image_cache.clear(ctx.user_id, ctx.chat_id)

        return {
            "success": True,
            "composerId": composer_id,
            "imagesAttached": len(images),
            "message": f"Follow-up sent to task {composer_id}",
        }


class CursorListModelsTool(BaseTool):
    def definition(self) -> ToolDefinition:
        return ToolDefinition(
            name="cursor_models_list",
            description="List the models available for background agent tasks.",
        )

    async def execute(self, **kwargs: Any) -> dict[str, Any]:
        try:
            models = await self.context.cursor.list_models()
        except Exception as e:
            return {"error": f"Failed to list models: {e}"}
        return {"models": models}
