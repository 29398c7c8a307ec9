"""Audio automation: volume-over-time functions for every audio channel.

The project BGM channel is composed from candidate envelopes by taking the
minimum at each instant, so a duck is never undone by a looser constraint:

* scene-level BGM intervals force the channel to 0 (with a short ramp just
  outside the interval),
* timeline automation entries and voice ducks each contribute a four-phase
  envelope (ramp in, hold, ramp out) over their window,
* the track's own placement window and fades,
* the base volume wherever no automation entry applies.

All results are piecewise-linear ``Envelope`` keyframe lists, which is exact
for this composition: inside any interval between candidate breakpoints the
minimum of linear pieces only bends where two of them cross.
"""

import logging
from dataclasses import dataclass
from itertools import combinations
from typing import Iterable, List, Optional, Sequence, Tuple

from ..models import (
    AutomationKind,
    BackgroundTrack,
    Envelope,
    Keyframe,
    SceneTiming,
    TimelineAutomationEntry,
)
from ..models.render_spec import BgmChannel, SceneAudio, SceneBgmLayer, SfxLayer, VoiceLayer
from .locators import to_absolute_url
from .resolver import PlacedClip, PlacedCue

logger = logging.getLogger(__name__)

SCENE_BGM_CROSSFADE_MS = 120
_TIME_DIGITS = 3
_VOLUME_DIGITS = 6
_EPSILON = 1e-9


@dataclass(frozen=True)
class Candidate:
    """An envelope that constrains the channel over its own span.

    ``replaces_base`` marks automation (user entries, voice ducks): where at
    least one such candidate applies, the base volume is not a candidate.
    """

    envelope: Envelope
    replaces_base: bool = False

    def covers(self, a: float, b: float) -> bool:
        return self.envelope.start_ms <= a and b <= self.envelope.end_ms


def clamp_fades(window_ms: float, fade_in_ms: float, fade_out_ms: float) -> Tuple[float, float]:
    """Limit fades that do not fit their window to half the window each."""
    if window_ms <= 0:
        return 0.0, 0.0
    if fade_in_ms + fade_out_ms <= window_ms:
        return float(fade_in_ms), float(fade_out_ms)
    half = window_ms / 2
    return float(min(fade_in_ms, half)), float(min(fade_out_ms, half))


def window_envelope(
    start_ms: float,
    end_ms: float,
    outside: float,
    target: float,
    fade_in_ms: float = 0,
    fade_out_ms: float = 0,
) -> Envelope:
    """Four-phase envelope: outside -> target -> hold -> outside.

    Args:
        start_ms: Window start.
        end_ms: Window end.
        outside: Level at the window edges.
        target: Level held inside the window.
        fade_in_ms: Ramp length at the start.
        fade_out_ms: Ramp length at the end.

    Returns:
        Envelope spanning exactly [start_ms, end_ms].
    """
    fade_in, fade_out = clamp_fades(end_ms - start_ms, fade_in_ms, fade_out_ms)
    return Envelope(keyframes=[
        Keyframe(t_ms=start_ms, volume=outside),
        Keyframe(t_ms=start_ms + fade_in, volume=target),
        Keyframe(t_ms=end_ms - fade_out, volume=target),
        Keyframe(t_ms=end_ms, volume=outside),
    ])


def compose_minimum(candidates: Sequence[Candidate], base: float, total_ms: float) -> Envelope:
    """Lower envelope of the candidates over [0, total_ms].

    Args:
        candidates: Constraining envelopes, each applying over its own span.
        base: Level used where no automation candidate applies.
        total_ms: Timeline length.

    Returns:
        The composed envelope.
    """
    if total_ms <= 0:
        return Envelope.constant(base)

    points = {0.0, float(total_ms)}
    for candidate in candidates:
        for frame in candidate.envelope.keyframes:
            if 0 <= frame.t_ms <= total_ms:
                points.add(float(frame.t_ms))
    breakpoints = sorted(points)

    frames: List[Keyframe] = []
    for a, b in zip(breakpoints, breakpoints[1:]):
        lines: List[Tuple[float, float]] = []
        automated = False
        for candidate in candidates:
            if candidate.covers(a, b):
                env = candidate.envelope
                lines.append((env.value_at(a), env.left_limit(b)))
                automated = automated or candidate.replaces_base
        if not automated:
            lines.append((base, base))
        _append_segment(frames, _lower_envelope(a, b, lines))

    return Envelope(keyframes=_simplify(frames))


def _lower_envelope(a: float, b: float, lines: Sequence[Tuple[float, float]]) -> List[Keyframe]:
    instants = {a, b}
    for (ya1, yb1), (ya2, yb2) in combinations(lines, 2):
        da = ya1 - ya2
        db = yb1 - yb2
        if da * db < 0:
            instants.add(round(a + (b - a) * (da / (da - db)), _TIME_DIGITS))

    segment: List[Keyframe] = []
    for t in sorted(instants):
        if t <= a:
            volume = min(ya for ya, _ in lines)
        elif t >= b:
            volume = min(yb for _, yb in lines)
        else:
            ratio = (t - a) / (b - a)
            volume = round(min(ya + (yb - ya) * ratio for ya, yb in lines), _VOLUME_DIGITS)
        segment.append(Keyframe(t_ms=t, volume=min(max(volume, 0.0), 1.0)))
    return segment


def _append_segment(frames: List[Keyframe], segment: List[Keyframe]) -> None:
    if frames and segment and frames[-1].t_ms == segment[0].t_ms and frames[-1].volume == segment[0].volume:
        segment = segment[1:]
    frames.extend(segment)


def _simplify(frames: Iterable[Keyframe]) -> List[Keyframe]:
    out: List[Keyframe] = []
    for frame in frames:
        if out and out[-1].t_ms == frame.t_ms and out[-1].volume == frame.volume:
            continue
        if len(out) >= 2 and out[-2].t_ms == out[-1].t_ms == frame.t_ms:
            out[-1] = frame
            continue
        if len(out) >= 2:
            k0, k1 = out[-2], out[-1]
            if k0.t_ms < k1.t_ms < frame.t_ms:
                ratio = (k1.t_ms - k0.t_ms) / (frame.t_ms - k0.t_ms)
                expected = k0.volume + (frame.volume - k0.volume) * ratio
                if abs(expected - k1.volume) <= _EPSILON:
                    out[-1] = frame
                    continue
        out.append(frame)
    return out


def _envelope_from_origin(points: Sequence[Tuple[float, float]]) -> Optional[Envelope]:
    """Envelope over ``(t_ms, volume)`` points, cut at t=0 by interpolation.

    Returns None when every point lies before the timeline.
    """
    if points[-1][0] < 0:
        return None
    if points[0][0] >= 0:
        return Envelope(keyframes=[Keyframe(t_ms=t, volume=v) for t, v in points])
    frames: List[Keyframe] = []
    for (t0, v0), (t1, v1) in zip(points, points[1:]):
        if t0 < 0 <= t1:
            ratio = -t0 / (t1 - t0)
            frames.append(Keyframe(t_ms=0, volume=round(v0 + (v1 - v0) * ratio, _VOLUME_DIGITS)))
        if t1 > 0:
            frames.append(Keyframe(t_ms=t1, volume=v1))
    return Envelope(keyframes=frames)


def track_window(track: BackgroundTrack, total_ms: int) -> Tuple[int, int]:
    """Span where the project track plays; may extend past the timeline."""
    start = track.video_start_ms
    end = total_ms if track.video_end_ms is None else track.video_end_ms
    return start, max(start, end)


def placement_candidates(track: BackgroundTrack, total_ms: int) -> List[Candidate]:
    """Silence outside the track window and its fade ramps."""
    start, end = track_window(track, total_ms)
    candidates: List[Candidate] = []
    if start > 0:
        candidates.append(Candidate(window_envelope(0, start, 0.0, 0.0)))
    if end < total_ms:
        candidates.append(Candidate(window_envelope(end, total_ms, 0.0, 0.0)))
    fade_in, fade_out = clamp_fades(end - start, track.fade_in_ms, track.fade_out_ms)
    if fade_in > 0:
        candidates.append(Candidate(Envelope(keyframes=[
            Keyframe(t_ms=start, volume=0.0),
            Keyframe(t_ms=start + fade_in, volume=track.volume),
        ])))
    if fade_out > 0:
        candidates.append(Candidate(Envelope(keyframes=[
            Keyframe(t_ms=end - fade_out, volume=track.volume),
            Keyframe(t_ms=end, volume=0.0),
        ])))
    return candidates


def scene_override_candidates(
    intervals: Sequence[Tuple[int, int]],
    base: float,
    total_ms: int,
    crossfade_ms: int = SCENE_BGM_CROSSFADE_MS,
) -> List[Candidate]:
    """Mute the project track wherever a scene plays its own track."""
    candidates: List[Candidate] = []
    for start, end in intervals:
        if end <= start or start >= total_ms:
            continue
        envelope = _envelope_from_origin([
            (start - crossfade_ms, base),
            (start, 0.0),
            (end, 0.0),
            (end + crossfade_ms, base),
        ])
        if envelope is not None:
            candidates.append(Candidate(envelope))
    return candidates


def entry_candidate(entry: TimelineAutomationEntry, base: float, total_ms: int) -> Optional[Candidate]:
    """Envelope of one user automation entry over its full authored window.

    Composition only reads the part inside the timeline, so an entry running
    past the end holds its target up to the last instant.
    """
    if entry.start_ms >= total_ms or entry.end_ms <= entry.start_ms:
        return None
    target = entry.volume
    if entry.kind == AutomationKind.DUCK:
        target = min(target, base)
    envelope = window_envelope(entry.start_ms, entry.end_ms, base, target, entry.fade_in_ms, entry.fade_out_ms)
    return Candidate(envelope, replaces_base=True)


def voice_duck_candidates(
    track: BackgroundTrack,
    voice_windows: Sequence[Tuple[int, int]],
    total_ms: int,
) -> List[Candidate]:
    """Duck the project track under every voice window.

    The attack ramp ends at the voice start and the release ramp starts at the
    voice end; ramps that reach before 0 or past the timeline are cut there.
    """
    ducking = track.ducking
    if ducking is None or not ducking.enabled:
        return []
    target = min(ducking.volume, track.volume)
    candidates: List[Candidate] = []
    for start, end in voice_windows:
        if end <= start or start >= total_ms:
            continue
        envelope = _envelope_from_origin([
            (start - ducking.attack_ms, track.volume),
            (start, target),
            (end, target),
            (end + ducking.release_ms, track.volume),
        ])
        if envelope is not None:
            candidates.append(Candidate(envelope, replaces_base=True))
    return candidates


def compose_bgm_channel(
    track: BackgroundTrack,
    total_ms: int,
    scene_bgm_intervals: Sequence[Tuple[int, int]] = (),
    entries: Sequence[TimelineAutomationEntry] = (),
    voice_windows: Sequence[Tuple[int, int]] = (),
    base_url: str = "",
) -> BgmChannel:
    """Compose the project-wide BGM channel.

    Args:
        track: The active project track.
        total_ms: Timeline length.
        scene_bgm_intervals: Absolute spans of scenes with their own track.
        entries: User automation entries.
        voice_windows: Absolute spans of voice clips (for ducking).
        base_url: Base for a relative track locator.

    Returns:
        The channel with its composed volume envelope.
    """
    base = track.volume
    candidates: List[Candidate] = []
    candidates.extend(scene_override_candidates(scene_bgm_intervals, base, total_ms))
    for entry in entries:
        candidate = entry_candidate(entry, base, total_ms)
        if candidate is not None:
            candidates.append(candidate)
    candidates.extend(voice_duck_candidates(track, voice_windows, total_ms))
    candidates.extend(placement_candidates(track, total_ms))

    envelope = compose_minimum(candidates, base, total_ms)
    logger.debug(
        f"BGM channel {track.id}: {len(candidates)} candidates -> "
        f"{len(envelope.keyframes)} keyframes"
    )
    return BgmChannel(
        id=track.id,
        url=to_absolute_url(track.url, base_url),
        loop=track.loop,
        audio_offset_ms=track.audio_offset_ms,
        base_volume=base,
        volume=envelope,
    )


def voice_windows(timing: SceneTiming, voices: Sequence[PlacedClip]) -> List[Tuple[int, int]]:
    """Absolute spans of a scene's voice clips."""
    return [(timing.start_ms + v.start_ms, timing.start_ms + v.end_ms) for v in voices]


def build_scene_audio(
    voices: Sequence[PlacedClip],
    bgm: Optional[BackgroundTrack],
    sfx: Sequence[PlacedCue],
    duration_ms: int,
    narration_volume: float = 1.0,
    base_url: str = "",
) -> SceneAudio:
    """Scene-relative audio layers with their volume envelopes.

    Voices and the scene track are constant; sound effects fade in and out
    from silence.
    """
    voice_layers = []
    for placed in voices:
        utterance = placed.utterance
        voice_layers.append(VoiceLayer(
            id=f"voice-{utterance.id}" if utterance else f"voice-{placed.clip.id}",
            utterance_id=utterance.id if utterance else None,
            role=utterance.role.value if utterance else "narration",
            character_key=utterance.character_key if utterance else None,
            text=utterance.text if utterance else "",
            url=to_absolute_url(placed.clip.url, base_url),
            start_ms=placed.start_ms,
            duration_ms=placed.clip.duration_ms,
            volume=Envelope.constant(narration_volume, placed.start_ms, placed.end_ms),
        ))

    bgm_layer = None
    if bgm is not None:
        bgm_layer = SceneBgmLayer(
            id=bgm.id,
            url=to_absolute_url(bgm.url, base_url),
            loop=bgm.loop,
            audio_offset_ms=bgm.audio_offset_ms,
            volume=Envelope.constant(bgm.volume, 0, duration_ms),
        )

    sfx_layers = [
        SfxLayer(
            id=f"sfx-{placed.cue.id}",
            name=placed.cue.name,
            url=to_absolute_url(placed.cue.url, base_url),
            start_ms=placed.start_ms,
            end_ms=placed.end_ms,
            loop=placed.cue.loop,
            volume=window_envelope(
                placed.start_ms, placed.end_ms, 0.0, placed.cue.volume,
                placed.cue.fade_in_ms, placed.cue.fade_out_ms,
            ),
        )
        for placed in sfx
    ]

    return SceneAudio(voices=voice_layers, bgm=bgm_layer, sfx=sfx_layers)
