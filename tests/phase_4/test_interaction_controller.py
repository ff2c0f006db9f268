from __future__ import annotations

import math

import pytest

from backend.app.config import InteractionConfig, load_config
from backend.app.contracts import Edge, KnowledgeGraph, Node
from backend.app.interaction import InteractionController, PointerEvent, WheelEvent
from backend.app.layout import initialize, step
from backend.app.render import GraphRenderer, Viewport


@pytest.fixture()
def state():
    graph = KnowledgeGraph(
        nodes=[Node(id="a", label="A", type="Product"), Node(id="b", label="B", type="Need")],
        edges=[Edge(source="a", target="b")],
    )
    simulation = initialize(graph, load_config().layout.result, seed=4)
    simulation.positions[simulation.index["a"]] = (0.0, 0.0)
    simulation.positions[simulation.index["b"]] = (150.0, 0.0)
    simulation.alpha = 0.0
    return simulation


@pytest.fixture()
def controller(state) -> InteractionController:
    interaction = InteractionController(Viewport(400, 400), GraphRenderer(), InteractionConfig())
    interaction.bind(state)
    return interaction


def test_drag_pins_node_and_warms_simulation(controller, state) -> None:
    assert controller.handle_pointer(PointerEvent("down", 202.0, 201.0))
    assert controller.dragging_node_id == "a"
    assert state.is_pinned("a")
    assert state.position("a") == (0.0, 0.0)
    assert state.alpha_target == state.profile.drag_alpha_target
    assert state.alpha >= state.profile.drag_alpha_target

    assert controller.handle_pointer(PointerEvent("move", 100.0, 300.0))
    step(state)
    assert state.position("a") == (-102.0, 99.0)
    assert not controller.is_panning


def test_drag_keeps_grab_offset_instead_of_snapping_to_pointer(controller, state) -> None:
    controller.handle_pointer(PointerEvent("down", 209.0, 195.0))
    assert controller.dragging_node_id == "a"
    assert state.position("a") == (0.0, 0.0)

    controller.handle_pointer(PointerEvent("move", 219.0, 215.0))
    assert state.position("a") == (10.0, 20.0)
    controller.handle_pointer(PointerEvent("up", 229.0, 215.0))
    assert state.position("a") == (20.0, 20.0)
    assert state.is_pinned("a")


def test_drag_release_keeps_pin_and_lets_layout_cool(controller, state) -> None:
    controller.handle_pointer(PointerEvent("down", 200.0, 200.0))
    controller.handle_pointer(PointerEvent("move", 300.0, 300.0))
    assert controller.handle_pointer(PointerEvent("up", 300.0, 300.0))
    assert controller.dragging_node_id is None
    assert state.is_pinned("a")
    assert state.alpha_target == 0.0
    for _ in range(10):
        step(state)
    assert state.position("a") == (100.0, 100.0)


def test_drag_cancel_keeps_last_position(controller, state) -> None:
    controller.handle_pointer(PointerEvent("down", 200.0, 200.0, pointer_id=3, pointer_type="touch"))
    controller.handle_pointer(PointerEvent("move", 250.0, 200.0, pointer_id=3, pointer_type="touch"))
    assert controller.handle_pointer(PointerEvent("cancel", 0.0, 0.0, pointer_id=3, pointer_type="touch"))
    assert state.position("a") == (50.0, 0.0)
    assert state.alpha_target == 0.0


def test_moves_from_other_pointers_do_not_move_dragged_node(controller, state) -> None:
    controller.handle_pointer(PointerEvent("down", 200.0, 200.0, pointer_id=1))
    assert not controller.handle_pointer(PointerEvent("move", 10.0, 10.0, pointer_id=2))
    assert state.position("a") == (0.0, 0.0)
    assert not controller.handle_pointer(PointerEvent("down", 350.0, 200.0, pointer_id=2))


def test_background_drag_pans_after_threshold(controller) -> None:
    viewport = controller.viewport
    assert controller.handle_pointer(PointerEvent("down", 50.0, 50.0))
    assert controller.is_panning
    assert not controller.handle_pointer(PointerEvent("move", 52.0, 51.0))
    assert (viewport.offset_x, viewport.offset_y) == (0.0, 0.0)
    assert controller.handle_pointer(PointerEvent("move", 70.0, 40.0))
    assert (viewport.offset_x, viewport.offset_y) == (20.0, -10.0)
    assert controller.handle_pointer(PointerEvent("move", 51.0, 50.0))
    assert viewport.offset_x == 1.0
    assert controller.handle_pointer(PointerEvent("up", 51.0, 50.0))
    assert not controller.is_panning


def test_hit_test_follows_pan(controller) -> None:
    controller.viewport.pan_by(100.0, 0.0)
    controller.handle_pointer(PointerEvent("down", 300.0, 200.0))
    assert controller.dragging_node_id == "a"


def test_secondary_button_is_ignored(controller) -> None:
    assert not controller.handle_pointer(PointerEvent("down", 200.0, 200.0, button=2))
    assert controller.dragging_node_id is None
    assert not controller.is_panning


@pytest.mark.parametrize("tag", ["input", "TEXTAREA", "button", "select"])
def test_events_from_form_controls_are_ignored(controller, state, tag) -> None:
    assert not controller.handle_pointer(PointerEvent("down", 200.0, 200.0, target_tag=tag))
    assert not state.is_pinned("a")
    assert not controller.handle_wheel(WheelEvent(200.0, 200.0, -100.0, target_tag=tag))
    assert controller.viewport.zoom == 1.0


def test_non_finite_pointer_is_ignored(controller) -> None:
    assert not controller.handle_pointer(PointerEvent("down", math.nan, 0.0))
    assert not controller.is_panning


def test_wheel_zooms_around_cursor(controller) -> None:
    viewport = controller.viewport
    anchor = viewport.screen_to_graph(300.0, 120.0)
    assert controller.handle_wheel(WheelEvent(300.0, 120.0, -100.0))
    assert viewport.zoom == pytest.approx(math.exp(0.25))
    assert viewport.graph_to_screen(*anchor) == pytest.approx((300.0, 120.0))


def test_wheel_delta_is_clamped_and_zoom_bounded(controller) -> None:
    viewport = controller.viewport
    controller.handle_wheel(WheelEvent(200.0, 200.0, 10_000.0))
    assert viewport.zoom == pytest.approx(math.exp(-120.0 * 0.0025))
    for _ in range(200):
        controller.handle_wheel(WheelEvent(200.0, 200.0, 120.0))
    assert viewport.zoom == pytest.approx(0.1)
    assert not controller.handle_wheel(WheelEvent(200.0, 200.0, 120.0))
    assert not controller.handle_wheel(WheelEvent(200.0, 200.0, math.inf))


def test_spotlight_tracks_pointer_percentages(controller) -> None:
    assert controller.spotlight.to_payload() == {"mouse_x": 50.0, "mouse_y": 50.0}
    controller.handle_pointer(PointerEvent("move", 100.0, 300.0))
    assert controller.spotlight.to_payload() == {"mouse_x": 25.0, "mouse_y": 75.0}
    controller.handle_pointer(PointerEvent("move", -40.0, 900.0))
    assert controller.spotlight.to_payload() == {"mouse_x": 0.0, "mouse_y": 100.0}


def test_rebinding_drops_active_drag(controller, state) -> None:
    controller.handle_pointer(PointerEvent("down", 200.0, 200.0))
    controller.bind(None)
    assert controller.dragging_node_id is None
    assert not controller.handle_pointer(PointerEvent("up", 200.0, 200.0))
    controller.handle_pointer(PointerEvent("down", 200.0, 200.0))
    assert controller.is_panning


def test_resize_reports_changes(controller) -> None:
    assert not controller.resize(400, 400)
    assert controller.resize(800, 0)
    assert (controller.viewport.width, controller.viewport.height) == (800, 1)
