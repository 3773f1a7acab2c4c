"""Display utilities for pinchwave visualization."""

import random
from typing import Iterable, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from pinchwave.controls import PerformanceState
from pinchwave.smoothing import Hand, Handedness, is_valid_hand
from pinchwave.util import FINGER_CONNECTIONS, format_on_off

# -------------------------------------------------------------------------------
# Types
# -------------------------------------------------------------------------------

Color = Union[Tuple[int, int, int], Tuple[int, int, int, int]]  # BGR or BGRA

HAND_COLOR: Color = (85, 0, 255)
TEXT_COLOR: Color = (255, 255, 255)
ACTIVE_COLOR: Color = (0, 255, 0)
INACTIVE_COLOR: Color = (100, 100, 100)
PANEL_COLOR: Color = (0, 0, 0, 150)

FONT = cv2.FONT_HERSHEY_SIMPLEX

# -------------------------------------------------------------------------------
# Screen drawing functions
# -------------------------------------------------------------------------------


def mirror_x(x, width):
    """The horizontal pixel position of `x` once the image is flipped."""
    return width - 1 - x


def _pixel(kp, width, *, mirrored=True, jitter=0.0):
    x = mirror_x(kp.x, width) if mirrored else kp.x
    if jitter:
        x += random.uniform(-jitter, jitter)
        y = kp.y + random.uniform(-jitter, jitter)
    else:
        y = kp.y
    return int(round(x)), int(round(y))


def draw_hand_skeleton(
    img: np.ndarray,
    hand: Hand,
    *,
    color: Color = HAND_COLOR,
    thickness: int = 4,
    joint_radius: int = 4,
    jitter: float = 2.0,
    mirrored: bool = True,
):
    """
    Draw the bones and joints of a hand, with a little random jitter for a glitchy
    look (set `jitter=0` for a steady drawing).
    """
    w = img.shape[1]
    k = hand.keypoints
    for chain in FINGER_CONNECTIONS:
        for a, b in zip(chain, chain[1:]):
            cv2.line(
                img,
                _pixel(k[a], w, mirrored=mirrored, jitter=jitter),
                _pixel(k[b], w, mirrored=mirrored, jitter=jitter),
                color,
                thickness,
            )
    for kp in k:
        cv2.circle(
            img,
            _pixel(kp, w, mirrored=mirrored, jitter=jitter / 2),
            joint_radius,
            color,
            -1,
        )
    return img


def hand_label(hand: Hand) -> str:
    """'R' or 'L', from the user's point of view (the video is mirrored)."""
    return 'R' if hand.handedness is Handedness.LEFT else 'L'


def draw_hand_label(
    img: np.ndarray,
    hand: Hand,
    *,
    color: Color = TEXT_COLOR,
    font_scale: float = 0.9,
    thickness: int = 2,
    mirrored: bool = True,
):
    """Write the hand's label centered just above its highest keypoint."""
    if not hand.keypoints:
        return img
    w = img.shape[1]
    highest_y = min(kp.y for kp in hand.keypoints)
    center_x = sum(kp.x for kp in hand.keypoints) / len(hand.keypoints)
    if mirrored:
        center_x = mirror_x(center_x, w)

    label = hand_label(hand)
    (text_width, _), _ = cv2.getTextSize(label, FONT, font_scale, thickness)
    org = (int(center_x - text_width / 2), int(highest_y - 10))
    cv2.putText(img, label, org, FONT, font_scale, color, thickness)
    return img


def draw_panel(
    img: np.ndarray,
    lines: Sequence[Tuple[str, Color]],
    *,
    x_pos: int = 10,
    y_pos: int = 10,
    width: int = 260,
    line_height: int = 26,
    font_scale: float = 0.6,
    thickness: int = 1,
    bg_color: Color = PANEL_COLOR,
    align_right: bool = False,
):
    """
    Draw lines of text over a semi-transparent background rectangle.

    Args:
        img: The image to draw on
        lines: `(text, color)` pairs, drawn top to bottom
        x_pos, y_pos: Top left corner of the panel
        width: Width of the panel
        line_height: Vertical space between lines
        bg_color: Background color (BGR + alpha) where alpha is 0-255
        align_right: Whether to right-align the text inside the panel
    """
    padding = 10
    height = padding * 2 + line_height * len(lines)

    # Process bg_color to separate BGR and alpha
    if len(bg_color) == 4:
        bg_rgb = bg_color[:3]
        alpha = bg_color[3] / 255.0
    else:
        bg_rgb = bg_color
        alpha = 0.5

    overlay = img.copy()
    cv2.rectangle(overlay, (x_pos, y_pos), (x_pos + width, y_pos + height), bg_rgb, -1)
    cv2.addWeighted(overlay, alpha, img, 1 - alpha, 0, img)

    for idx, (text, color) in enumerate(lines):
        (text_width, text_height), _ = cv2.getTextSize(text, FONT, font_scale, thickness)
        if align_right:
            x = x_pos + width - padding - text_width
        else:
            x = x_pos + padding
        y = y_pos + padding + idx * line_height + text_height + 4
        cv2.putText(img, text, (x, y), FONT, font_scale, color, thickness)

    return img


def dashboard_lines(state: PerformanceState):
    """The `(melody_lines, rhythm_lines)` of the dashboard."""
    fields = state.display_fields()
    melody_lines = [
        ("MELODY (Left)", TEXT_COLOR),
        (f"Note: {fields['note']}", TEXT_COLOR),
        (f"Synth: {fields['synth']}", TEXT_COLOR),
    ]
    rhythm_lines = [("RHYTHM (Right)", TEXT_COLOR)] + [
        (f"{format_on_off(on)}  {label}", ACTIVE_COLOR if on else INACTIVE_COLOR)
        for label, on in fields['rhythm'].items()
    ]
    return melody_lines, rhythm_lines


def draw_dashboard(img: np.ndarray, state: PerformanceState, *, panel_width=260):
    melody_lines, rhythm_lines = dashboard_lines(state)
    w = img.shape[1]
    draw_panel(img, melody_lines, x_pos=10, width=panel_width)
    draw_panel(
        img, rhythm_lines, x_pos=w - panel_width - 10, width=panel_width, align_right=True
    )
    return img


def draw_frame(
    img: np.ndarray,
    hands: Iterable[Hand],
    state: Optional[PerformanceState] = None,
    *,
    mirrored: bool = True,
    jitter: float = 2.0,
):
    """
    Draw the (smoothed) hands and the dashboard on a camera frame.

    The frame is flipped horizontally first (if `mirrored`), so that the user sees
    themselves as in a mirror. Malformed hands (missing or non-finite keypoints) are
    not drawn.

    Returns:
        img: The image with visualizations added
    """
    if mirrored:
        img = cv2.flip(img, 1)
    for hand in hands:
        if not is_valid_hand(hand):
            continue
        draw_hand_skeleton(img, hand, mirrored=mirrored, jitter=jitter)
        draw_hand_label(img, hand, mirrored=mirrored)
    if state is not None:
        draw_dashboard(img, state)
    return img
