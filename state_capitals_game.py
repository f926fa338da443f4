# state_capitals_game.py
import datetime
import logging
import pathlib
import time
from typing import Dict, Optional

import streamlit as st
import streamlit.components.v1 as components
from streamlit_autorefresh import st_autorefresh

import config
import us_map
from game_session import AnswerNotAccepted, GameMode, GameSession, format_elapsed
from map_highlight import LEGEND, MapHighlighter, ViewState
from progress_store import (
    ProgressError,
    ProgressReporter,
    ProgressStore,
    compute_users_leaderboard,
)
from states_data import RegionOption, UnknownRegionError, get_available_regions, get_region

logging.basicConfig(level=config.LOG_LEVEL, format=config.LOG_FORMAT)
logger = logging.getLogger(__name__)

GUEST = "Guest"

# ---------- Cached resources ----------
class MapUnavailable(RuntimeError):
    pass


@st.cache_data(ttl=60 * 60 * 24, show_spinner=False)
def load_cached_shapes() -> Dict[str, Dict]:
    # Failures raise so they are not cached
    shapes = us_map.load_map_shapes()
    if shapes is None:
        raise MapUnavailable("US state shapes could not be loaded")
    return shapes


@st.cache_resource
def get_store() -> ProgressStore:
    return ProgressStore(config.PROGRESS_FILE)


def get_shapes() -> Optional[Dict[str, Dict]]:
    """Shapes for the map, or None once loading has failed this session."""
    if st.session_state.get("map_failed"):
        return None
    try:
        return load_cached_shapes()
    except MapUnavailable as e:
        logger.error(f"{e}; continuing with the answer list only")
        st.session_state["map_failed"] = True
        return None


# ---------- Navigation ----------
def read_selection() -> Optional[tuple]:
    """(region, mode) from the URL, or None when the setup screen should show."""
    region_id = st.query_params.get("region")
    mode_value = st.query_params.get("mode")
    if not region_id or not mode_value:
        return None
    try:
        region = get_region(region_id)
        mode = GameMode(mode_value)
    except (UnknownRegionError, ValueError):
        logger.warning(f"Ignoring invalid selection region={region_id!r} mode={mode_value!r}")
        return None
    if not region.available:
        return None
    return region, mode


def leave_game() -> None:
    st.query_params.clear()
    for key in ("game", "highlighter", "view", "game_key"):
        st.session_state.pop(key, None)


# ---------- Players ----------
def current_player() -> Optional[str]:
    player = st.session_state.get("current_user")
    return None if player in (None, GUEST) else player


def make_reporter(region: RegionOption) -> Optional[ProgressReporter]:
    player = current_player()
    if not player:
        return None
    return ProgressReporter(get_store(), player, region.id, difficulty=config.DEFAULT_DIFFICULTY)


def ensure_game(region: RegionOption, mode: GameMode) -> GameSession:
    """Reuse the session's game unless region, mode or player changed."""
    key = (region.id, mode.value, current_player())
    if st.session_state.get("game_key") != key or "game" not in st.session_state:
        game = GameSession(region.places, mode, on_answer=make_reporter(region))
        st.session_state["game"] = game
        st.session_state["highlighter"] = MapHighlighter(region.places)
        st.session_state["view"] = ViewState()
        st.session_state["game_key"] = key
    return st.session_state["game"]


def reset_game() -> None:
    game: GameSession = st.session_state["game"]
    game.reset()
    st.session_state["highlighter"].forget()
    st.session_state["view"].reset()


def submit(answer_id: str) -> None:
    game: GameSession = st.session_state["game"]
    try:
        game.submit_answer(answer_id)
    except AnswerNotAccepted as e:
        # e.g. a double click that landed after a correct answer
        logger.debug(str(e))


# ---------- Footer ----------
def render_footer() -> None:
    """Render a small footer indicating creation date and purpose."""
    try:
        stats = pathlib.Path(__file__).resolve().stat()
        created_ts = getattr(stats, "st_birthtime", stats.st_ctime)
    except OSError:
        created_ts = time.time()
    created_str = datetime.datetime.fromtimestamp(created_ts).strftime("%B %d, %Y")

    st.write("---")
    st.markdown(
        (
            f"<div style='color:#64748b;font-size:12px;text-align:center;'>"
            f"Created {created_str}. Learn the fifty states one region at a time."
            f"</div>"
        ),
        unsafe_allow_html=True,
    )


# ---------- Sidebar ----------
def render_sidebar(in_game: bool) -> None:
    store = get_store()
    if "new_player_input_counter" not in st.session_state:
        st.session_state["new_player_input_counter"] = 0
    if "current_user" not in st.session_state:
        st.session_state["current_user"] = store.active_user() or GUEST

    with st.sidebar:
        st.header("Players")
        users = store.list_users()
        options = [GUEST] + [u["email"] for u in users]
        names = {u["email"]: u["name"] for u in users}
        pending_select = st.session_state.pop("pending_select_user", None)
        if pending_select in options:
            st.session_state["player_select"] = pending_select
        if st.session_state.get("player_select") not in (None, *options):
            st.session_state.pop("player_select", None)
        current = st.session_state.get("current_user")
        index = options.index(current) if current in options else 0
        selected = st.radio(
            "Current player",
            options=options,
            index=index,
            key="player_select",
            format_func=lambda e: e if e == GUEST else f"{names.get(e, e)} ({e})",
        )
        if selected != current:
            st.session_state["current_user"] = selected
            try:
                store.set_active_user(None if selected == GUEST else selected)
            except ProgressError as e:
                logger.warning(f"Active player not saved: {e}")
            st.rerun()

        email_key = f"new_player_email_{st.session_state['new_player_input_counter']}"
        name_key = f"new_player_name_{st.session_state['new_player_input_counter']}"
        st.text_input("Email", key=email_key, placeholder="e.g., ada@example.com")
        st.text_input("Display name", key=name_key, placeholder="e.g., Ada")
        if st.button("Create player"):
            email = (st.session_state.get(email_key) or "").strip()
            try:
                user = store.register_user(email, st.session_state.get(name_key) or "")
            except ProgressError as e:
                st.warning(str(e))
            else:
                st.session_state["current_user"] = user["email"]
                st.session_state["new_player_input_counter"] += 1
                st.session_state["pending_select_user"] = user["email"]
                st.success(f"Player '{user['name']}' ready.")
                st.rerun()

        player = current_player()
        if player:
            st.write("---")
            st.subheader("Your progress")
            try:
                records = store.list_progress(player)
            except ProgressError as e:
                logger.warning(f"Could not list progress for {player}: {e}")
                records = []
            if not records:
                st.caption("No answers recorded yet.")
            for r in records:
                accuracy = int(round((r["correct_answers"] / r["attempts"]) * 100)) if r["attempts"] else 0
                st.write(
                    f"**{r['region'].title()}** ({r['difficulty']}): {r['score']} pts, "
                    f"{r['correct_answers']}/{r['attempts']} correct ({accuracy}%)"
                )

        if in_game:
            st.write("---")
            st.header("Game")
            if st.button("Reset game"):
                reset_game()
                st.rerun()
            if st.button("Change region or mode"):
                leave_game()
                st.rerun()


# ---------- Setup screen ----------
def render_setup() -> None:
    st.title("🗺️ State Capitals: USA Edition")
    st.markdown("Choose your region and game mode to get started.")
    st.write("---")

    regions = get_available_regions()
    region = st.radio(
        "Region",
        options=regions,
        format_func=lambda r: f"{r.name} ({r.state_count} states)",
        key="setup_region",
    )
    if region:
        st.caption(region.description)
    mode = st.radio(
        "Game mode",
        options=list(GameMode),
        format_func=lambda m: m.label,
        key="setup_mode",
    )
    if mode is GameMode.STATES:
        st.caption("Find the highlighted state and pick its name.")
    else:
        st.caption("You'll see a state's name; pick its capital city.")

    if region and mode:
        st.info(f"Playing {mode.label} in the {region.name} region")
    if st.button("Start game", type="primary", disabled=not (region and mode)):
        st.query_params["region"] = region.id
        st.query_params["mode"] = mode.value
        st.rerun()


# ---------- Game screen ----------
def render_timer(started_at: float) -> None:
    timer_html = """
    <div style='display:flex;justify-content:center;'>
      <div style='display:inline-block;padding:8px 14px;border:1px solid #e5e7eb;border-radius:12px;background:#ffffff;'>
        <div style='font-size:12px;color:#64748b;line-height:1;'>Time</div>
        <div id='game-timer' style='font-size:24px;font-weight:700;color:#7c3aed;line-height:1.1;'>0.00s</div>
      </div>
    </div>
    <script>
      const __start = __START_MS__;
      function __fmt(ms){
        const total = Math.floor(ms/1000);
        const m = Math.floor(total/60);
        const s = total % 60;
        const cs = String(Math.floor((ms % 1000)/10)).padStart(2,'0');
        return m > 0 ? m + ':' + String(s).padStart(2,'0') + '.' + cs : s + '.' + cs + 's';
      }
      function __tick(){
        const el = document.getElementById('game-timer');
        if(!el) return;
        el.textContent = __fmt(Date.now() - __start);
      }
      __tick();
      setInterval(__tick, 100);
    </script>
    """
    components.html(timer_html.replace("__START_MS__", str(int(started_at * 1000))), height=80, scrolling=False)


def render_scoreboard(game: GameSession) -> None:
    state = game.state
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Score", state.score)
    c2.metric("Correct", state.correct_count)
    c3.metric("Attempts", state.attempts)
    with c4:
        if state.started_at is not None:
            render_timer(state.started_at)
    if not current_player():
        st.caption("🟡 Playing as Guest. Pick or create a player in the sidebar to track progress.")


def render_legend() -> None:
    items = "".join(
        f"<div style='display:flex;align-items:center;gap:6px;'>"
        f"<div style='width:14px;height:14px;background:{color};border:1px solid #9ca3af;border-radius:3px;'></div>"
        f"<span style='font-size:13px;font-weight:500;color:#334155;'>{label}</span></div>"
        for color, label in LEGEND
    )
    st.markdown(
        f"<div style='display:flex;justify-content:center;gap:18px;margin-top:6px;'>{items}</div>",
        unsafe_allow_html=True,
    )


def render_map(game: GameSession, region: RegionOption) -> None:
    shapes = get_shapes()
    if shapes is None:
        st.warning("The map could not be loaded. You can keep playing with the list.")
        return

    highlighter: MapHighlighter = st.session_state["highlighter"]
    view: ViewState = st.session_state["view"]
    highlighter.sync(game.state)

    drawn = us_map.drawn_places(region.places, shapes)
    fig = us_map.build_state_map(
        region.places,
        highlighter.colors,
        shapes,
        view=view,
        show_names=game.mode is GameMode.CAPITALS,
    )
    st.markdown(f"#### {region.name} United States")
    event = st.plotly_chart(
        fig,
        use_container_width=True,
        on_select="rerun",
        selection_mode="points",
        key=f"map_{game.state.attempts}_{game.state.target}",
    )

    z1, z2, z3, z4, z5, z6, z7 = st.columns(7)
    if z1.button("➕", help="Zoom in"):
        view.zoom_in()
        st.rerun()
    if z2.button("➖", help="Zoom out"):
        view.zoom_out()
        st.rerun()
    if z3.button("⬅️", help="Pan west"):
        view.pan_by(-0.1, 0)
        st.rerun()
    if z4.button("➡️", help="Pan east"):
        view.pan_by(0.1, 0)
        st.rerun()
    if z5.button("⬆️", help="Pan north"):
        view.pan_by(0, 0.1)
        st.rerun()
    if z6.button("⬇️", help="Pan south"):
        view.pan_by(0, -0.1)
        st.rerun()
    if z7.button("🔄", help="Reset view"):
        view.reset()
        st.rerun()
    render_legend()

    clicked = us_map.place_id_from_selection(event, drawn)
    if not clicked:
        return
    if game.mode is GameMode.STATES:
        if game.accepting_answers and not game.option_disabled(clicked):
            submit(clicked)
            st.rerun()
    else:
        # capitals are answered from the list; a click only points at a state
        view.hover(clicked)
    if view.hovered:
        place = next((p for p in region.places if p.id == view.hovered), None)
        if place:
            st.caption(f"You pointed at {place.name}.")


def render_answer_list(game: GameSession) -> None:
    if game.mode is GameMode.STATES:
        st.subheader("Select the State")
        st.caption("Click on the state name that matches the highlighted state on the map.")
    else:
        st.subheader("Select the Capital")
        st.caption("Click on the capital city name that matches the shown state.")

    options = sorted(game.places, key=lambda p: game.answer_key(p) if game.mode is GameMode.CAPITALS else p.name)
    for place in options:
        answer = game.answer_key(place)
        if game.mode is GameMode.STATES:
            label = f"{place.name} · {place.abbreviation}"
        else:
            label = place.capital
        if game.is_solved_option(answer):
            label = f"✅ {label}"
        elif game.is_missed_option(answer):
            label = f"❌ {label}"
        st.button(
            label,
            key=f"opt_{answer}",
            on_click=submit,
            args=(answer,),
            disabled=game.option_disabled(answer),
            use_container_width=True,
        )


def render_completion(game: GameSession, region: RegionOption) -> None:
    state = game.state
    st.title("🎉 Congratulations!")
    st.markdown(f"You have completed the **{region.name}** {game.mode.label} game!")
    c1, c2 = st.columns(2)
    c1.metric("Total Score", state.score)
    c2.metric("Accuracy", f"{state.accuracy}%")
    st.metric("Final Time", format_elapsed(state.elapsed_ms))
    st.caption("Can you beat this time?")
    st.write(f"{state.correct_count} correct out of {state.attempts} attempts")
    if st.button("Play Again", type="primary"):
        reset_game()
        st.rerun()


def render_leaderboard() -> None:
    rows = compute_users_leaderboard(get_store())
    st.write("---")
    st.subheader("Leaderboard")
    if not rows:
        st.caption("No players yet. Add one in the sidebar.")
        return
    html_rows = []
    for rank, r in enumerate(rows, start=1):
        badge = (
            "🥇" if rank == 1 else
            "🥈" if rank == 2 else
            "🥉" if rank == 3 else
            f"#{rank}"
        )
        html_rows.append(
            """
            <div style='display:flex;align-items:center;gap:12px;justify-content:space-between;padding:10px 12px;border:1px solid #e5e7eb;border-radius:10px;background:#ffffff;'>
              <div style='display:flex;align-items:center;gap:10px;'>
                <div style='font-size:18px;width:32px;text-align:center;'>{badge}</div>
                <div style='font-weight:600;color:#0f172a;'>{name}</div>
              </div>
              <div style='display:flex;align-items:center;gap:16px;color:#334155;font-size:13px;'>
                <div title='Total score'>⭐ {score}</div>
                <div title='Correct answers'>✅ {correct}</div>
                <div title='Accuracy'>🎯 {accuracy}%</div>
                <div title='Total answers'>🧮 {attempts}</div>
              </div>
            </div>
            """.format(
                badge=badge,
                name=r["name"],
                score=r["score"],
                correct=r["correct"],
                accuracy=r["accuracy"],
                attempts=r["attempts"],
            )
        )
    list_html = "<div style='display:flex;flex-direction:column;gap:8px'>" + "".join(html_rows) + "</div>"
    components.html(list_html, height=min(420, 72 * len(rows) + 30), scrolling=True)


def render_game(region: RegionOption, mode: GameMode) -> None:
    game = ensure_game(region, mode)
    game.tick()

    if game.state.completed:
        render_completion(game, region)
        return

    st.title(f"{region.name} {'States' if mode is GameMode.STATES else 'Capitals'} Game")
    target = game.target_place
    if mode is GameMode.STATES:
        st.markdown("Find the highlighted state on the map")
    elif target:
        st.subheader(f"What is the capital of **{target.name}**?")
    render_scoreboard(game)

    if game.message:
        if game.message_kind == "success":
            st.success(game.message)
        else:
            st.error(game.message)

    wait = game.seconds_until_next_timer()
    if wait is not None:
        # one-shot rerun when the next timer is due
        st_autorefresh(
            interval=max(100, int(wait * 1000) + 50),
            limit=1,
            key=f"timer_{game.state.attempts}_{game.state.target}",
        )

    col_map, col_list = st.columns(2)
    with col_list:
        render_answer_list(game)
    with col_map:
        render_map(game, region)


# ---------- App UI ----------
st.set_page_config(page_title="State Capitals: USA Edition", layout="wide")

selection = read_selection()
render_sidebar(in_game=selection is not None)
if selection is None:
    render_setup()
else:
    render_game(*selection)
render_leaderboard()
render_footer()
