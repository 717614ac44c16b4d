"""
Web route handlers for the medal tally.

Leaderboard routes read from the read-only replica store; admin routes
mutate through the writer store.
"""

import json
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

from aiohttp import web
from jinja2 import Environment, FileSystemLoader, select_autoescape
from yarl import URL

from .exceptions import (
    InvalidMedalValueError,
    InvalidPlacementError,
    MedalTallyError,
    UnknownCategoryError,
    UnknownEventError,
    UnknownGradeError,
)
from .logger import get_logger
from .models import CategoryFilter, Medal, Snapshot
from .store import StateStore
from .views import (
    build_admin_rows,
    build_category_view,
    build_standings_view,
    build_stats,
    format_last_updated,
    section_info,
    selected_grade,
)

log = get_logger("medal_tally.web")

DEFAULT_TEMPLATES_PATH = Path(__file__).parent / "templates"

_NOT_FOUND_ERRORS = (UnknownEventError, UnknownGradeError, UnknownCategoryError)
_BAD_REQUEST_ERRORS = (InvalidPlacementError, InvalidMedalValueError)


def _error_response(status: int, error: Any) -> web.Response:
    return web.json_response({"error": str(error)}, status=status)


def _admin_return_path(request: web.Request) -> str:
    # Keep the admin category tab; never redirect off-site
    referer = URL(request.headers.get("Referer", ""))
    if referer.path == "/admin":
        return str(referer.relative())
    return "/admin"


class WebHandlers:
    """Handles web routes and responses."""

    def __init__(
        self,
        writer: StateStore,
        replica: StateStore,
        config: Any,
        templates_path: Optional[str] = None,
    ) -> None:
        self.writer = writer
        self.replica = replica
        self.config = config

        self.jinja_env = Environment(
            loader=FileSystemLoader(templates_path or str(DEFAULT_TEMPLATES_PATH)),
            autoescape=select_autoescape(["html"]),
            auto_reload=False,  # Disable auto-reload for performance
            cache_size=50,  # Cache up to 50 templates
        )

    def _render(
        self,
        template_name: str,
        **context: Any,
    ) -> web.Response:
        """
        Render a template to an HTML response.

        @param template_name: Template file name under the templates directory
        @param context: Template variables
        @return: HTTP response with rendered HTML
        """
        template = self.jinja_env.get_template(template_name)
        html = template.render(config=self.config, **context)
        return web.Response(text=html, content_type="text/html")

    def _tabs(self) -> list:
        return [
            {"slug": tab.value, "title": section_info(tab)["title"]}
            for tab in CategoryFilter
        ]

    # ------------------------------------------------------------------
    # Leaderboard pages
    # ------------------------------------------------------------------

    async def web_index(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Leaderboard main page with the overall medal tally.

        @param _: Unused request parameter
        @return: HTTP response with rendered leaderboard page
        """
        snapshot = self.replica.snapshot
        return self._render(
            "leaderboard.html",
            title="Overall Medal Tally",
            section=section_info(CategoryFilter.ALL),
            tabs=self._tabs(),
            active_tab=CategoryFilter.ALL.value,
            standings=build_standings_view(snapshot),
            stats=build_stats(snapshot),
            last_updated=format_last_updated(snapshot),
        )

    async def web_category(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Leaderboard page for one results tab.

        @param request: HTTP request object containing the category slug
        @return: HTTP response with rendered category page, 404 if unknown
        """
        slug = request.match_info["category"]
        category = CategoryFilter.parse(slug)

        if category is None:
            return web.Response(
                text=f"Unknown category: {slug}",
                status=404,
                content_type="text/plain",
            )
        if category is CategoryFilter.ALL:
            raise web.HTTPFound(location="/")

        snapshot = self.replica.snapshot
        view = build_category_view(snapshot, category)
        return self._render(
            "category.html",
            title=view.title,
            section={"title": view.title, "description": view.description},
            tabs=self._tabs(),
            active_tab=category.value,
            view=view,
            stats=build_stats(snapshot),
            last_updated=format_last_updated(snapshot),
        )

    # ------------------------------------------------------------------
    # Admin page
    # ------------------------------------------------------------------

    async def web_admin(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Admin page with the medal editor and placement selectors.

        @param request: HTTP request object, optional ?category= tab
        @return: HTTP response with rendered admin page
        """
        category = CategoryFilter.parse(request.query.get("category", "all"))
        if category is None:
            category = CategoryFilter.ALL

        snapshot = self.writer.snapshot
        view = build_category_view(snapshot, category)

        placements: Dict[str, Dict[int, Optional[str]]] = {
            event_id: {medal.position: selected_grade(event, medal.position) for medal in Medal}
            for event_id, event in snapshot.sports.items()
        }

        return self._render(
            "admin.html",
            title="Admin Panel",
            tabs=self._tabs(),
            admin_tabs=True,
            active_tab=category.value,
            grades=build_admin_rows(snapshot),
            grade_options=[
                {"id": grade.grade_id.value, "name": grade.name}
                for grade in snapshot.grades.values()
            ],
            medals=list(Medal),
            medal_values=snapshot.medal_values,
            view=view,
            placements=placements,
            document=json.dumps(snapshot.to_document(), indent=2),
            last_updated=format_last_updated(snapshot),
        )

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    async def web_api_snapshot(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        API endpoint for the full leaderboard snapshot.

        @param _: Unused request parameter
        @return: JSON response containing the snapshot document
        """
        return web.json_response(self.replica.snapshot.to_document())

    async def web_api_standings(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        API endpoint for the overall standings.

        @param _: Unused request parameter
        @return: JSON response containing ranked standings rows
        """
        snapshot = self.replica.snapshot
        return web.json_response(
            {
                "lastUpdated": snapshot.last_updated,
                "standings": [row.to_dict() for row in build_standings_view(snapshot)],
            }
        )

    async def web_api_category(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        API endpoint for one results tab.

        @param request: HTTP request object containing the category slug
        @return: JSON response containing grouped event results, 404 if unknown
        """
        try:
            view = build_category_view(self.replica.snapshot, request.match_info["category"])
        except UnknownCategoryError as e:
            return _error_response(404, e)
        return web.json_response(view.to_dict())

    async def web_api_stats(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        API endpoint for meet statistics.

        @param _: Unused request parameter
        @return: JSON response with grade, event and completion counts
        """
        return web.json_response(build_stats(self.replica.snapshot))

    async def web_api_export(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Download the writer's snapshot as a JSON data file.

        @param _: Unused request parameter
        @return: JSON attachment response
        """
        return web.Response(
            text=json.dumps(self.writer.export_document(), indent=2),
            content_type="application/json",
            headers={"Content-Disposition": 'attachment; filename="intramurals_data.json"'},
        )

    async def web_api_refresh(
        self,
        _: web.Request,
    ) -> web.Response:
        """
        Reload the leaderboard snapshot through the bootstrap chain.

        @param _: Unused request parameter
        @return: JSON response with the source used and its timestamp
        """
        snapshot = await self.replica.refresh()
        return web.json_response(
            {"source": self.replica.source, "lastUpdated": snapshot.last_updated}
        )

    # ------------------------------------------------------------------
    # Admin API
    # ------------------------------------------------------------------

    async def _read_payload(
        self,
        request: web.Request,
    ) -> Tuple[Dict[str, Any], bool]:
        """
        Read a JSON body or an HTML form post.

        @param request: HTTP request object
        @return: Payload dictionary and whether it came from a form
        """
        if request.content_type == "application/json":
            try:
                data = await request.json()
            except json.JSONDecodeError:
                raise web.HTTPBadRequest(
                    text=json.dumps({"error": "Invalid JSON body"}),
                    content_type="application/json",
                )
            if not isinstance(data, dict):
                raise web.HTTPBadRequest(
                    text=json.dumps({"error": "Expected a JSON object"}),
                    content_type="application/json",
                )
            return data, False

        form = await request.post()
        return dict(form), True

    async def _run_mutation(
        self,
        request: web.Request,
        mutation: Callable[[Dict[str, Any]], Awaitable[Snapshot]],
    ) -> web.Response:
        """
        Run a writer-store mutation and translate domain errors.

        Form posts are redirected back to the admin page; JSON clients get
        the updated standings.

        @param request: HTTP request object
        @param mutation: Coroutine function taking the request payload
        @return: JSON response, or a redirect for form posts
        """
        payload, is_form = await self._read_payload(request)

        try:
            snapshot = await mutation(payload)
        except _NOT_FOUND_ERRORS as e:
            return _error_response(404, e)
        except _BAD_REQUEST_ERRORS as e:
            return _error_response(400, e)
        except MedalTallyError as e:
            log.error(f"Mutation failed: {e}")
            return _error_response(409, e)

        if is_form:
            raise web.HTTPSeeOther(location=_admin_return_path(request))

        return web.json_response(
            {
                "status": "ok",
                "lastUpdated": snapshot.last_updated,
                "standings": [row.to_dict() for row in build_standings_view(snapshot)],
            }
        )

    async def web_api_set_placement(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Set or clear the grade at a position of an event.

        @param request: HTTP request with {sport} and payload position, grade
        @return: JSON response with updated standings
        """
        sport = request.match_info["sport"]

        async def mutation(payload: Dict[str, Any]) -> Snapshot:
            if "position" not in payload:
                raise InvalidPlacementError("Missing position")
            return await self.writer.set_placement(
                sport, payload["position"], payload.get("grade")
            )

        return await self._run_mutation(request, mutation)

    async def web_api_clear_sport(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Clear every placement of an event.

        @param request: HTTP request with {sport}
        @return: JSON response with updated standings
        """
        sport = request.match_info["sport"]

        async def mutation(_: Dict[str, Any]) -> Snapshot:
            return await self.writer.clear_event(sport)

        return await self._run_mutation(request, mutation)

    async def web_api_set_medals(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Manually override one medal count of a grade.

        @param request: HTTP request with {grade} and payload medal, value
        @return: JSON response with updated standings, 403 if disabled
        """
        if not self.config.is_feature_enabled("manual_medal_edits"):
            return _error_response(403, "Manual medal edits are disabled")

        grade = request.match_info["grade"]

        async def mutation(payload: Dict[str, Any]) -> Snapshot:
            return await self.writer.set_medal_count(
                grade, payload.get("medal", ""), payload.get("value")
            )

        return await self._run_mutation(request, mutation)

    async def web_api_add_medal(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Add one medal to a grade.

        @param request: HTTP request with {grade} and {medal}
        @return: JSON response with updated standings, 403 if disabled
        """
        if not self.config.is_feature_enabled("manual_medal_edits"):
            return _error_response(403, "Manual medal edits are disabled")

        grade = request.match_info["grade"]
        medal = request.match_info["medal"]

        async def mutation(_: Dict[str, Any]) -> Snapshot:
            return await self.writer.add_medal(grade, medal)

        return await self._run_mutation(request, mutation)

    async def web_api_reset_grade(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Zero a grade's medal counts.

        @param request: HTTP request with {grade}
        @return: JSON response with updated standings
        """
        grade = request.match_info["grade"]

        async def mutation(_: Dict[str, Any]) -> Snapshot:
            return await self.writer.reset_grade(grade)

        return await self._run_mutation(request, mutation)

    async def web_api_reset_all(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Zero every grade and clear every event's placements.

        @param request: HTTP request object
        @return: JSON response with updated standings
        """
        async def mutation(_: Dict[str, Any]) -> Snapshot:
            return await self.writer.reset_all()

        return await self._run_mutation(request, mutation)

    async def web_api_recalculate(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Rebuild medal counts from placements and save.

        @param request: HTTP request object
        @return: JSON response with updated standings
        """
        async def mutation(_: Dict[str, Any]) -> Snapshot:
            return await self.writer.recalculate()

        return await self._run_mutation(request, mutation)

    async def web_api_medal_values(
        self,
        request: web.Request,
    ) -> web.Response:
        """
        Update medal point weights.

        @param request: HTTP request with payload gold, silver, bronze
        @return: JSON response with updated standings
        """
        async def mutation(payload: Dict[str, Any]) -> Snapshot:
            return await self.writer.set_medal_values(
                payload.get("gold"), payload.get("silver"), payload.get("bronze")
            )

        return await self._run_mutation(request, mutation)
