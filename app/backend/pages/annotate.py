"""
Annotation Page - Mark analytics events on product screenshots

Features:
- Module management (create, rename, delete) with event counts
- Screenshot upload, navigation, status and ordering
- Interactive canvas for drawing, moving and resizing event regions
- Event type form for freshly drawn regions
- Event type filter with per-screenshot counts
- Event list with delete
- Read-only overlay preview for non-admin users
"""
import logging
from io import BytesIO
from typing import List, Optional

import streamlit as st
from PIL import Image, UnidentifiedImageError

from app import config
from app.backend.state import AnnotationState
from app.services.annotation import (
    AnnotationEngine,
    AnnotationError,
    DocumentStore,
    DrawComplete,
    EventType,
    ImageSize,
    LocalBlobStorage,
    Module,
    Region,
    RegionDeleted,
    RegionSelected,
    RegionUpdated,
    Screenshot,
    ScreenshotStatus,
    ScreenshotUploader,
    all_event_types,
    annotation_canvas,
    count_by_type,
    filter_regions,
    parse_canvas_result,
    render_overlay,
    resolve,
)
from app.services.annotation.event_types import region_label
from app.services.annotation.models import details_from_fields
from app.services.annotation.render import fit_to_width

logger = logging.getLogger(__name__)

# Form inputs per event type: (field, label)
FORM_FIELDS = {
    EventType.PAGE_VIEW: [("name", "Page Title"), ("category", "Page URL")],
    EventType.TRACK_EVENT_WITH_PAGE_VIEW: [("category", "Category"), ("action", "Action"), ("name", "Name"), ("value", "Value")],
    EventType.TRACK_EVENT: [("category", "Category"), ("action", "Action"), ("name", "Name"), ("value", "Value")],
    EventType.BACKEND_EVENT: [("category", "Category"), ("action", "Action"), ("name", "Name"), ("value", "Value")],
    EventType.OUTLINK: [("category", "Category"), ("name", "Name"), ("value", "Value")],
}


def get_annotation_state() -> AnnotationState:
    """Get annotation state from session state"""
    return st.session_state.annotation_state


def current_module(document_modules: List[Module], state: AnnotationState) -> Optional[Module]:
    for module in document_modules:
        if module.key == state.current_module:
            return module
    return None


def render_module_sidebar(store: DocumentStore, state: AnnotationState, modules: List[Module]):
    """Render module management controls in sidebar"""
    st.sidebar.header("Modules")

    if state.is_admin:
        with st.sidebar.expander("Create New Module", expanded=not modules):
            new_name = st.text_input("Module Name", key="new_module_name")
            if st.button("Create", disabled=not new_name, key="create_module"):
                try:
                    module = store.create_module(new_name)
                except (AnnotationError, ValueError) as e:
                    st.error(str(e))
                else:
                    state.current_module = module.key
                    state.current_screenshot_idx = 0
                    state.reset_screenshot()
                    st.rerun()

    if not modules:
        return

    keys = [m.key for m in modules]
    names = {m.key: m.name for m in modules}
    selected = st.sidebar.selectbox(
        "Module",
        [""] + keys,
        index=keys.index(state.current_module) + 1 if state.current_module in keys else 0,
        format_func=lambda key: names.get(key, "Select a module"),
        key="select_module",
    )

    if selected and selected != state.current_module:
        state.current_module = selected
        state.current_screenshot_idx = 0
        state.reset_screenshot()
        st.rerun()

    module = current_module(modules, state)
    if module is None:
        return

    # Legend counts
    st.sidebar.divider()
    st.sidebar.markdown(f"**{module.name}**")
    st.sidebar.caption(f"Screenshots: {len(module.screenshots)}")
    try:
        counts = store.module_event_counts(module.key)
    except AnnotationError as e:
        st.sidebar.error(str(e))
    else:
        st.sidebar.caption(f"Page views: {counts['pageView']}")
        st.sidebar.caption(f"Track events with page view: {counts['trackEventWithPageView']}")
        st.sidebar.caption(f"Track events: {counts['trackEvent']}")
        st.sidebar.caption(f"Outlinks: {counts['outlink']}")

    if state.is_admin:
        with st.sidebar.expander("Manage Module"):
            new_name = st.text_input("Rename", value=module.name, key=f"rename_{module.key}")
            if st.button("Save Name", disabled=not new_name or new_name == module.name, key="rename_module"):
                try:
                    renamed = store.rename_module(module.key, new_name)
                except (AnnotationError, ValueError) as e:
                    st.error(str(e))
                else:
                    state.current_module = renamed.key
                    st.rerun()
            if st.button("Delete Module", type="secondary", key="delete_module"):
                try:
                    store.delete_module(module.key)
                except AnnotationError as e:
                    st.error(str(e))
                else:
                    state.current_module = None
                    state.current_screenshot_idx = 0
                    state.reset_screenshot()
                    st.rerun()


def render_legend():
    """Render the event type legend"""
    parts = [
        f"<span style='color: {info.color};'>&#9632;</span> {info.display_name}"
        for info in all_event_types()
    ]
    st.markdown(" &nbsp; ".join(parts), unsafe_allow_html=True)


def render_screenshot_upload(uploader: ScreenshotUploader, state: AnnotationState):
    """Render screenshot upload section"""
    if not state.current_module or not state.is_admin:
        return

    st.subheader("Add Screenshots")

    uploaded_files = st.file_uploader(
        "Upload screenshots to annotate",
        type=["png", "jpg", "jpeg", "gif"],
        accept_multiple_files=True,
        key="screenshot_upload",
    )

    if uploaded_files and st.button("Add to Module"):
        added = 0
        for file in uploaded_files:
            try:
                uploader.upload(state.current_module, file.read(), file.type, file.name)
                added += 1
            except AnnotationError as e:
                st.error(f"{file.name}: {e}")
        if added:
            st.success(f"Added {added} screenshot(s)")
            st.rerun()


def render_screenshot_navigation(store: DocumentStore, state: AnnotationState, module: Module):
    """Render screenshot navigation, status and ordering controls"""
    if not module.screenshots:
        return

    num_screenshots = len(module.screenshots)
    idx = state.current_screenshot_idx
    screenshot = module.screenshots[idx]

    col1, col2, col3, col4, col5 = st.columns([1, 1, 2, 1, 1])

    with col1:
        if st.button("First", disabled=idx == 0, key="shot_first"):
            state.current_screenshot_idx = 0
            state.reset_screenshot()
            st.rerun()

    with col2:
        if st.button("Prev", disabled=idx == 0, key="shot_prev"):
            state.current_screenshot_idx -= 1
            state.reset_screenshot()
            st.rerun()

    with col3:
        st.markdown(
            f"<div style='text-align: center; padding-top: 5px;'><strong>{screenshot.name} "
            f"({idx + 1} of {num_screenshots})</strong></div>",
            unsafe_allow_html=True,
        )

    with col4:
        if st.button("Next", disabled=idx >= num_screenshots - 1, key="shot_next"):
            state.current_screenshot_idx += 1
            state.reset_screenshot()
            st.rerun()

    with col5:
        if st.button("Last", disabled=idx >= num_screenshots - 1, key="shot_last"):
            state.current_screenshot_idx = num_screenshots - 1
            state.reset_screenshot()
            st.rerun()

    statuses = [s.value for s in ScreenshotStatus]
    status = st.selectbox(
        "Status",
        statuses,
        index=statuses.index(screenshot.status.value),
        disabled=not state.is_admin,
        key=f"status_{screenshot.id}",
    )
    if state.is_admin and status != screenshot.status.value:
        try:
            store.update_screenshot_status(screenshot.id, ScreenshotStatus(status))
        except AnnotationError as e:
            st.error(str(e))
        else:
            st.rerun()

    if not state.is_admin:
        return

    col1, col2, col3 = st.columns(3)

    with col1:
        if st.button("Move Earlier", disabled=idx == 0, key="shot_move_earlier"):
            move_screenshot(store, state, module, idx, idx - 1)

    with col2:
        if st.button("Move Later", disabled=idx >= num_screenshots - 1, key="shot_move_later"):
            move_screenshot(store, state, module, idx, idx + 1)

    with col3:
        if st.button("Delete Screenshot", type="secondary", key="shot_delete"):
            try:
                store.delete_screenshot(screenshot.id)
            except AnnotationError as e:
                st.error(str(e))
            else:
                state.current_screenshot_idx = max(0, min(idx, num_screenshots - 2))
                state.reset_screenshot()
                st.rerun()


def move_screenshot(store: DocumentStore, state: AnnotationState, module: Module, src: int, dst: int):
    """Swap two screenshots' positions in a module"""
    order = module.screenshot_ids
    order[src], order[dst] = order[dst], order[src]
    try:
        store.reorder_screenshots(module.key, order)
    except AnnotationError as e:
        st.error(str(e))
        return
    state.current_screenshot_idx = dst
    st.rerun()


def render_drawing_toolbar(state: AnnotationState):
    """Render drawing mode toolbar"""
    st.markdown("### Drawing Tools")

    if not state.is_admin:
        st.caption("View only: ask an admin to add or change events.")
        return

    col1, col2 = st.columns(2)

    with col1:
        if st.button(
            "Draw Event",
            type="primary" if state.drawing_enabled else "secondary",
            use_container_width=True,
            key="mode_draw",
        ):
            state.drawing_enabled = not state.drawing_enabled
            if state.drawing_enabled:
                state.drag_mode = False
            st.rerun()

    with col2:
        if st.button(
            "Move / Resize",
            type="primary" if state.drag_mode else "secondary",
            use_container_width=True,
            key="mode_drag",
        ):
            state.drag_mode = not state.drag_mode
            if state.drag_mode:
                state.drawing_enabled = False
            st.rerun()


def load_screenshot_image(store: DocumentStore, screenshot: Screenshot) -> Optional[Image.Image]:
    """Fetch a screenshot's image from blob storage"""
    key = store.blob.key_for_url(screenshot.url)
    if key is None:
        return None
    try:
        data = store.blob.get_object(key)
    except AnnotationError:
        logger.warning("Image for screenshot %s missing at %s", screenshot.id, key)
        return None

    content_type = store.blob.content_type(key)
    if content_type is not None and content_type not in config.ALLOWED_IMAGE_TYPES:
        logger.warning("Object %s for screenshot %s is %s, not an image", key, screenshot.id, content_type)
        return None

    try:
        image = Image.open(BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as e:
        logger.warning("Image for screenshot %s at %s is unreadable: %s", screenshot.id, key, e)
        return None
    return image


def get_engine(
    state: AnnotationState,
    screenshot: Screenshot,
    image: Image.Image,
    regions: Optional[List[Region]] = None,
) -> AnnotationEngine:
    """Engine for the current screenshot, synced with the visible regions and toolbar"""
    natural_size = ImageSize(width=image.width, height=image.height)
    engine = state.engine
    if engine is None or engine.screenshot_id != screenshot.id:
        engine = AnnotationEngine(
            natural_size=natural_size,
            display_size=natural_size,
            screenshot_id=screenshot.id,
        )
        state.engine = engine
    elif engine.natural_size != natural_size:
        engine.resize(natural_size=natural_size)

    engine.drawing_enabled = state.drawing_enabled
    engine.drag_mode = state.drag_mode
    engine.role = state.role
    engine.set_regions(screenshot.events if regions is None else regions)
    engine.context.selected_region_id = state.selected_region_id
    return engine


def handle_intents(store: DocumentStore, state: AnnotationState, engine: AnnotationEngine, intents) -> bool:
    """
    Persist engine intents and mirror them into the engine

    Returns:
        True if anything changed and the page should rerun
    """
    changed = False
    for intent in intents:
        try:
            if isinstance(intent, DrawComplete):
                state.pending_region = intent.pending
            elif isinstance(intent, RegionSelected):
                state.selected_region_id = intent.region_id
            elif isinstance(intent, RegionUpdated):
                store.upsert_region(engine.screenshot_id, intent.region)
            elif isinstance(intent, RegionDeleted):
                store.delete_region(intent.screenshot_id or engine.screenshot_id, intent.region_id)
                if state.selected_region_id == intent.region_id:
                    state.selected_region_id = None
        except AnnotationError as e:
            # Engine stays on the last stored regions
            logger.error("Failed to persist %s: %s", type(intent).__name__, e)
            st.error(f"Could not save change: {e}")
            continue
        engine.apply(intent)
        changed = True
    return changed


def render_annotation_canvas(
    store: DocumentStore,
    state: AnnotationState,
    screenshot: Screenshot,
    regions: Optional[List[Region]] = None,
):
    """Render the annotation canvas (or a static overlay for viewers)"""
    if regions is None:
        regions = screenshot.events

    image = load_screenshot_image(store, screenshot)
    if image is None:
        st.error(f"Could not load image: {screenshot.url}")
        return

    if not state.is_admin:
        preview = fit_to_width(image, config.DEFAULT_DISPLAY_WIDTH)
        st.image(render_overlay(preview, regions, state.selected_region_id), use_container_width=True)
        return

    engine = get_engine(state, screenshot, image, regions)

    result = annotation_canvas(
        image=image,
        regions=regions,
        selected_region_id=state.selected_region_id,
        drawing_enabled=state.drawing_enabled,
        drag_mode=state.drag_mode,
        display_width=config.DEFAULT_DISPLAY_WIDTH,
        key=f"canvas_{screenshot.id}",
    )
    if not result:
        return

    # Skip if we already processed this batch (prevents infinite loop)
    batch_id = result.get("batchId")
    if batch_id and batch_id == state.last_batch_id:
        return
    state.last_batch_id = batch_id

    events, display_size = parse_canvas_result(result)
    if display_size is not None:
        engine.resize(display_size=display_size)

    intents = []
    for event in events:
        intents.extend(engine.dispatch(event))

    if handle_intents(store, state, engine, intents):
        st.rerun()


def render_event_form(store: DocumentStore, state: AnnotationState):
    """Render the event type form for a freshly drawn region"""
    pending = state.pending_region
    if pending is None:
        return

    st.subheader("New Event")
    infos = all_event_types()
    info = st.selectbox(
        "Event Type",
        infos,
        format_func=lambda i: i.display_name,
        key=f"event_type_{pending.id}",
    )
    st.caption(info.description)

    fields = {}
    for field_name, label in FORM_FIELDS[info.event_type]:
        required = field_name in info.required_fields
        fields[field_name] = st.text_input(
            f"{label}{' *' if required else ''}",
            key=f"field_{field_name}_{pending.id}",
        ).strip()

    dimensions_raw = st.text_input("Dimension IDs (comma separated)", key=f"dimensions_{pending.id}")
    description = st.text_area("Description", key=f"description_{pending.id}")

    missing = [name for name in info.required_fields if not fields.get(name)]

    col1, col2 = st.columns(2)

    with col1:
        if st.button("Save Event", type="primary", disabled=bool(missing), key="save_event"):
            dimensions = []
            for dim in dimensions_raw.split(","):
                dim = dim.strip()
                if dim and dim not in dimensions:
                    dimensions.append(dim)
            region = pending.commit(
                info.event_type,
                details_from_fields(info.event_type, fields),
                dimensions=tuple(dimensions),
                description=description.strip() or None,
            )
            try:
                stored = store.upsert_region(pending.screenshot_id, region)
            except AnnotationError as e:
                st.error(f"Could not save event: {e}")
                return
            if state.engine is not None:
                state.engine.apply(RegionUpdated(stored))
            state.pending_region = None
            state.selected_region_id = stored.id
            st.rerun()

    with col2:
        if st.button("Discard", key="discard_event"):
            state.pending_region = None
            st.rerun()

    if missing:
        st.caption(f"Required: {', '.join(missing)}")


def render_event_filter(state: AnnotationState, screenshot: Screenshot) -> List[Region]:
    """
    Render the event type filter with per-screenshot counts

    Returns:
        Regions of the chosen type, or every region for "All Events"
    """
    counts = count_by_type(screenshot.events)
    options = [None] + list(counts)

    def label(event_type):
        if event_type is None:
            return f"All Events ({len(screenshot.events)})"
        return f"{resolve(event_type).display_name} ({counts[event_type]})"

    choice = st.sidebar.radio(
        "Show",
        options,
        index=options.index(state.event_filter) if state.event_filter in options else 0,
        format_func=label,
        key="event_filter",
    )
    state.event_filter = choice

    visible = filter_regions(screenshot.events, choice)
    # A hidden region cannot stay selected
    if state.selected_region_id and all(r.id != state.selected_region_id for r in visible):
        state.selected_region_id = None
    return visible


def render_event_sidebar(store: DocumentStore, state: AnnotationState, screenshot: Screenshot) -> List[Region]:
    """
    Render event filter, event list and delete control in sidebar

    Returns:
        Regions left visible by the filter
    """
    st.sidebar.divider()
    st.sidebar.header("Events")

    if not screenshot.events:
        st.sidebar.info("No events yet. Draw on the screenshot to add events.")
        return []

    regions = render_event_filter(state, screenshot)
    if not regions:
        st.sidebar.info("No events of this type on this screenshot.")
        return regions

    for region in regions:
        is_selected = region.id == state.selected_region_id
        label = f"{resolve(region.event_type).display_name}: {region_label(region)}"
        if st.sidebar.button(
            f"{'> ' if is_selected else ''}{label}",
            key=f"region_{region.id}",
            use_container_width=True,
        ):
            state.selected_region_id = None if is_selected else region.id
            st.rerun()

    if not state.selected_region_id:
        return regions
    region = screenshot.get_region(state.selected_region_id)
    if region is None:
        return regions

    st.sidebar.divider()
    st.sidebar.subheader("Selected Event")
    for name, value in region.details.to_fields().items():
        if value:
            st.sidebar.caption(f"{name}: {value}")
    if region.dimensions:
        st.sidebar.caption(f"dimensions: {', '.join(region.dimensions)}")
    if region.description:
        st.sidebar.caption(region.description)

    if state.is_admin and st.sidebar.button("Delete Event", type="secondary", key=f"delete_{region.id}"):
        engine = state.engine
        if engine is not None and engine.screenshot_id == screenshot.id:
            if handle_intents(store, state, engine, engine.request_delete(region.id)):
                st.rerun()
            return regions
        try:
            store.delete_region(screenshot.id, region.id)
        except AnnotationError as e:
            st.sidebar.error(str(e))
            return regions
        state.selected_region_id = None
        st.rerun()
    return regions


def render_annotation_page():
    """Main annotation page render function"""
    state = get_annotation_state()
    store = DocumentStore(LocalBlobStorage())
    uploader = ScreenshotUploader(store)

    try:
        document = store.get_document()
    except AnnotationError as e:
        st.error(f"Could not load annotations: {e}")
        return

    # Sidebar: Module management
    render_module_sidebar(store, state, document.modules)

    module = current_module(document.modules, state)
    if module is None:
        st.info("Create or select a module to start annotating.")
        return

    render_legend()

    # Screenshot upload
    if state.is_admin:
        with st.expander("Add Screenshots", expanded=not module.screenshots):
            render_screenshot_upload(uploader, state)

    if not module.screenshots:
        st.info("Upload screenshots to start annotating.")
        return

    if state.current_screenshot_idx >= len(module.screenshots):
        state.current_screenshot_idx = len(module.screenshots) - 1

    st.divider()

    # Navigation
    render_screenshot_navigation(store, state, module)

    st.divider()

    # Drawing toolbar
    render_drawing_toolbar(state)

    st.divider()

    screenshot = module.screenshots[state.current_screenshot_idx]

    # Event list in sidebar, limited to the chosen type
    visible = render_event_sidebar(store, state, screenshot)

    # Canvas
    render_annotation_canvas(store, state, screenshot, visible)

    # Event type form for a pending drawing
    render_event_form(store, state)
