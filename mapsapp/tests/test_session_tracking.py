"""
Tests for TrackingSession behaviour while active: one-time recenter and
seeding, viewport refreshes, presence fan-out, both nearby producers,
and discarding results that arrive after teardown.
"""

from __future__ import annotations

import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from mapsapp.const import POSITION_ALERT_TITLE
from mapsapp.errors import PositionTimeout, PositionUnavailable
from mapsapp.models import Coordinate, NearbyEntity, Role
from mapsapp.session_data import SOURCE_REALTIME, SOURCE_REST
from mapsapp.session_utils import radius_from_viewport

from .test_common import FakeClock, make_fix, make_identity, make_record, make_session, make_viewport


def _entity(entity_id: int) -> NearbyEntity:
    return NearbyEntity(id=entity_id, display_name=f"E{entity_id}", coordinate=Coordinate(lat=0.0, lng=0.0))


class TestInitialRecenter(unittest.IsolatedAsyncioTestCase):

    async def _started(self, **kwargs):
        session = make_session(make_identity(), **kwargs)
        await session.async_start()
        return session, session._source._provider

    async def test_fix_after_map_ready(self):
        session, geo = await self._started()
        session.on_map_ready()
        geo.push(make_fix(lat=-12.1, lng=-77.1))
        await session._refresher.async_wait_idle()

        session._map.animate_camera_to.assert_called_once()
        self.assertEqual(session._map.animate_camera_to.call_args.args[:2], (-12.1, -77.1))
        session._fetch_nearby.assert_awaited_once_with(-12.1, -77.1, session.config["radius_km"])
        await session.async_teardown()

    async def test_fix_before_map_ready_is_buffered(self):
        session, geo = await self._started()
        geo.push(make_fix(lat=-12.1, lng=-77.1))
        geo.push(make_fix(lat=-12.2, lng=-77.2))
        session._map.animate_camera_to.assert_not_called()
        session._fetch_nearby.assert_not_awaited()

        session.on_map_ready()
        await session._refresher.async_wait_idle()

        # Uses the newest buffered fix, never the first stale one
        session._map.animate_camera_to.assert_called_once()
        self.assertEqual(session._map.animate_camera_to.call_args.args[:2], (-12.2, -77.2))
        session._fetch_nearby.assert_awaited_once_with(-12.2, -77.2, session.config["radius_km"])
        await session.async_teardown()

    async def test_recenter_happens_once(self):
        session, geo = await self._started()
        session.on_map_ready()
        for i in range(5):
            geo.push(make_fix(lat=-12.0 - i / 100))
        session.on_map_ready()
        await session._refresher.async_wait_idle()

        session._map.animate_camera_to.assert_called_once()
        session._fetch_nearby.assert_awaited_once()
        await session.async_teardown()

    async def test_current_fix_tracks_latest(self):
        session, geo = await self._started()
        fix = make_fix(lat=-12.3)
        geo.push(make_fix(lat=-12.1))
        geo.push(fix)
        self.assertEqual(session.current_fix, fix)
        await session.async_teardown()


class TestViewportRefresh(unittest.IsolatedAsyncioTestCase):

    async def test_burst_of_viewport_changes_yields_one_query(self):
        session = make_session(make_identity())
        await session.async_start()
        viewports = [make_viewport(lat=-12.0 - i / 10, span=0.1) for i in range(6)]
        for viewport in viewports:
            session.on_viewport_change_settled(viewport)
        self.assertTrue(session.refresh_pending)

        await asyncio.sleep(session.config["refresh_debounce"] * 3)
        await session._refresher.async_wait_idle()

        last = viewports[-1]
        session._fetch_nearby.assert_awaited_once_with(
            last.center_latitude, last.center_longitude, radius_from_viewport(last)
        )
        await session.async_teardown()

    async def test_viewport_ignored_when_inactive(self):
        session = make_session(make_identity())
        session.on_viewport_change_settled(make_viewport())
        self.assertFalse(session.refresh_pending)

    async def test_successful_refresh_replaces_entities_and_renders(self):
        session = make_session(make_identity())
        session._fetch_nearby = AsyncMock(return_value=[_entity(1), _entity(2)])
        await session.async_start()
        session.on_viewport_change_settled(make_viewport())
        await asyncio.sleep(session.config["refresh_debounce"] * 3)
        await session._refresher.async_wait_idle()

        self.assertEqual([e.id for e in session.data.entities], [1, 2])
        self.assertEqual(session.data.entities_source, SOURCE_REST)
        session._map.render_markers.assert_called_once_with(session.data.entities)
        await session.async_teardown()

    async def test_failed_refresh_keeps_previous_entities(self):
        session = make_session(make_identity())
        await session.async_start()
        session._apply_rest_entities([_entity(1)])
        session._fetch_nearby = AsyncMock(return_value=None)

        await session._refresher.refresh_now(0.0, 0.0, 5)

        self.assertEqual([e.id for e in session.data.entities], [1])
        await session.async_teardown()

    async def test_backend_failure_keeps_previous_entities(self):
        session = make_session(make_identity())
        del session._fetch_nearby
        await session.async_start()
        session._apply_rest_entities([_entity(1)])

        with patch("mapsapp.session.fetch_nearby", AsyncMock(return_value=None)) as fetch:
            await session._refresher.refresh_now(-12.0, -77.0, 5)

        fetch.assert_awaited_once_with(
            -12.0, -77.0, 5,
            base_url=session.config["api_base_url"],
            timeout=session.config["request_timeout"],
        )
        self.assertEqual([e.id for e in session.data.entities], [1])
        await session.async_teardown()

    async def test_in_flight_refresh_discarded_after_teardown(self):
        session = make_session(make_identity())
        release = asyncio.Event()

        async def slow_fetch(lat, lng, radius_km):
            await release.wait()
            return [_entity(99)]

        session._fetch_nearby = slow_fetch
        await session.async_start()
        session._apply_rest_entities([_entity(1)])
        session._refresher.refresh_now(0.0, 0.0, 5)
        await asyncio.sleep(0)

        await session.async_teardown()
        release.set()
        await session._refresher.async_wait_idle()

        self.assertEqual([e.id for e in session.data.entities], [1])

    async def test_in_flight_failure_after_teardown_is_quiet(self):
        session = make_session(make_identity())
        release = asyncio.Event()

        async def failing_fetch(lat, lng, radius_km):
            await release.wait()
            raise RuntimeError("backend down")

        session._fetch_nearby = failing_fetch
        await session.async_start()
        session._refresher.refresh_now(0.0, 0.0, 5)
        await asyncio.sleep(0)
        await session.async_teardown()
        release.set()
        await session._refresher.async_wait_idle()
        self.assertEqual(session.data.entities, [])


class TestUserRecenter(unittest.IsolatedAsyncioTestCase):

    async def test_recenter_uses_current_fix_without_debounce(self):
        session = make_session(make_identity())
        await session.async_start()
        session._source._provider.push(make_fix(lat=-12.4, lng=-77.4))

        self.assertTrue(await session.async_recenter())

        self.assertEqual(session._map.animate_camera_to.call_args.args[:2], (-12.4, -77.4))
        session._fetch_nearby.assert_awaited_with(-12.4, -77.4, session.config["radius_km"])
        await session.async_teardown()

    async def test_recenter_without_fix(self):
        session = make_session(make_identity())
        await session.async_start()
        self.assertFalse(await session.async_recenter())
        session._fetch_nearby.assert_not_awaited()
        await session.async_teardown()


class TestPresenceFanOut(unittest.IsolatedAsyncioTestCase):

    async def test_broadcaster_fixes_at_0_1_2_6_seconds(self):
        clock = FakeClock()
        session = make_session(make_identity(5, Role.BROADCASTER), clock=clock)
        await session.async_start()
        geo = session._source._provider

        for t in (0.0, 1.0, 2.0, 6.0):
            clock.now = t
            geo.push(make_fix())
        await asyncio.sleep(0)

        self.assertEqual(session.channel.update_position.await_count, 2)
        self.assertEqual(session.last_broadcast, 6.0)
        await session.async_teardown()

    async def test_no_identity_still_tracks(self):
        session = make_session(None)
        await session.async_start()
        session.on_map_ready()
        session._source._provider.push(make_fix())
        await session._refresher.async_wait_idle()

        session.channel.update_position.assert_not_called()
        session.channel.find_nearby.assert_not_called()
        session._map.animate_camera_to.assert_called_once()
        await session.async_teardown()

    async def test_seeker_realtime_results_replace_entities(self):
        session = make_session(make_identity(5, Role.SEEKER))
        session.channel.find_nearby = AsyncMock(return_value=[make_record(8), make_record(9)])
        await session.async_start()
        session._apply_rest_entities([_entity(1)])

        session._source._provider.push(make_fix())
        await asyncio.sleep(0)
        await asyncio.sleep(0)

        self.assertEqual([e.id for e in session.data.entities], [8, 9])
        self.assertEqual(session.data.entities_source, SOURCE_REALTIME)
        await session.async_teardown()

    async def test_realtime_result_after_teardown_discarded(self):
        session = make_session(make_identity(5, Role.SEEKER))
        await session.async_start()
        await session.async_teardown()
        session._apply_realtime_entities([_entity(3)])
        self.assertEqual(session.data.entities, [])


class TestErrorsAndListeners(unittest.IsolatedAsyncioTestCase):

    async def test_first_fix_timeout_alerts_once(self):
        session = make_session(make_identity())
        await session.async_start()
        geo = session._source._provider
        session._alerts.reset_mock()

        geo.fail(PositionTimeout("no fix"))
        geo.fail(PositionTimeout("no fix"))

        session._alerts.show_alert.assert_called_once()
        self.assertEqual(session._alerts.show_alert.call_args.args[0], POSITION_ALERT_TITLE)
        self.assertIsNotNone(session.watch_handle)
        await session.async_teardown()

    async def test_no_first_fix_raises_position_alert(self):
        session = make_session(make_identity(), watch_timeout_ms=20)
        await session.async_start()
        session._alerts.reset_mock()

        await asyncio.sleep(0.1)

        session._alerts.show_alert.assert_called_once()
        self.assertEqual(session._alerts.show_alert.call_args.args[0], POSITION_ALERT_TITLE)
        await session.async_teardown()

    async def test_transient_errors_only_logged(self):
        session = make_session(make_identity())
        await session.async_start()
        session._alerts.reset_mock()
        session._source._provider.fail(PositionUnavailable("weak signal"))
        session._alerts.show_alert.assert_not_called()
        await session.async_teardown()

    async def test_listener_receives_snapshots_until_removed(self):
        session = make_session(make_identity())
        await session.async_start()
        snapshots = []
        remove = session.add_listener(snapshots.append)

        session._source._provider.push(make_fix(lat=-12.5))
        remove()
        session._source._provider.push(make_fix(lat=-12.6))

        self.assertEqual(len(snapshots), 1)
        self.assertEqual(snapshots[0].current_fix.latitude, -12.5)
        await session.async_teardown()

    async def test_failing_listener_does_not_break_session(self):
        session = make_session(make_identity())
        await session.async_start()
        session.add_listener(MagicMock(side_effect=RuntimeError("ui")))
        session._source._provider.push(make_fix(lat=-12.5))
        self.assertEqual(session.current_fix.latitude, -12.5)
        await session.async_teardown()

    async def test_map_tap_is_harmless(self):
        session = make_session(make_identity())
        session.on_map_tap(-12.046374, -77.042793)
