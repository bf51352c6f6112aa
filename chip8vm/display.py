"""
Display, keyboard and sound collaborators for the interpreter.
Text and PNG renderings of the framebuffer, and a tkinter window that drives
an emulator interactively at roughly 60 frames per second.
"""

import logging
from typing import Optional

import numpy as np
from PIL import Image

from .emulator import Chip8Emulator
from .errors import Chip8Error

logger = logging.getLogger(__name__)

FRAME_INTERVAL_MS = 16

# CHIP-8 keypad mapping to keyboard keys
# Original CHIP-8 keypad:     Modern keyboard mapping:
# 1 2 3 C                     1 2 3 4
# 4 5 6 D          =>         Q W E R
# 7 8 9 E                     A S D F
# A 0 B F                     Z X C V
KEY_MAPPING = {
    '1': 0x1, '2': 0x2, '3': 0x3, '4': 0xC,
    'q': 0x4, 'w': 0x5, 'e': 0x6, 'r': 0xD,
    'a': 0x7, 's': 0x8, 'd': 0x9, 'f': 0xE,
    'z': 0xA, 'x': 0x0, 'c': 0xB, 'v': 0xF
}


def render_text(display: np.ndarray, on: str = '██', off: str = '  ') -> str:
    """Render a framebuffer as block characters, one line per row"""
    return "\n".join(''.join(on if pixel else off for pixel in row) for row in display)


def display_to_image(display: np.ndarray, scale: int = 8) -> Image.Image:
    """Scale the framebuffer up and convert it to a greyscale image"""
    if scale < 1:
        raise ValueError(f"scale must be at least 1, got {scale}")
    display_img = (np.asarray(display) != 0).astype(np.uint8) * 255
    scaled_img = np.repeat(np.repeat(display_img, scale, axis=0), scale, axis=1)
    return Image.fromarray(scaled_img)


def save_png(display: np.ndarray, path: str, scale: int = 8) -> str:
    """Save the framebuffer as a PNG screenshot"""
    display_to_image(display, scale).save(path)
    logger.info("Saved screenshot to %s", path)
    return path


class DisplayWindow:
    """
    Interactive tkinter front end.
    Runs cycles_per_frame instructions every frame, renders the framebuffer,
    feeds key events into the keypad and rings the bell when the sound timer starts.
    """

    def __init__(self, emulator: Chip8Emulator, scale: int = 10,
                 cycles_per_frame: int = 10, title: str = "CHIP-8"):
        self.emulator = emulator
        self.scale = scale
        self.cycles_per_frame = cycles_per_frame
        self.title = title
        self.fault: Optional[Chip8Error] = None
        self._closing = False
        self._sound_was_active = False
        self._pressed_keys = set()

    def run(self) -> Optional[Chip8Error]:
        """Open the window and block until it closes, returns the fault if one occurred"""
        import tkinter as tk

        display = self.emulator.machine.display
        height, width = display.shape

        self.root = tk.Tk()
        self.root.title(self.title)
        self.root.resizable(False, False)

        self.canvas = tk.Canvas(self.root, width=width * self.scale,
                                height=height * self.scale, bg='black')
        self.canvas.pack()

        info_frame = tk.Frame(self.root)
        info_frame.pack(fill='x', padx=5, pady=5)
        tk.Label(info_frame,
                 text="CHIP-8 Keypad Layout:\n" +
                      "1 2 3 4    →    1 2 3 C\n" +
                      "Q W E R    →    4 5 6 D\n" +
                      "A S D F    →    7 8 9 E\n" +
                      "Z X C V    →    A 0 B F\n\n" +
                      "Press ESC to close",
                 font=('Courier', 9), justify='left', bg='lightgray').pack(side='left')
        self.status = tk.Label(info_frame, text="", font=('Courier', 9), justify='right')
        self.status.pack(side='right')

        self.root.bind('<KeyPress>', self._key_press)
        self.root.bind('<KeyRelease>', self._key_release)
        self.root.protocol("WM_DELETE_WINDOW", self.close)
        self.root.focus_set()

        self._frame()
        try:
            self.root.mainloop()
        finally:
            self._closing = True
        return self.fault

    def close(self):
        self._closing = True
        self.root.quit()
        self.root.destroy()

    def _key_press(self, event):
        if self._closing:
            return
        key = event.keysym.lower()
        if key == 'escape':
            self.close()
        elif key in KEY_MAPPING and key not in self._pressed_keys:
            self._pressed_keys.add(key)
            self.emulator.set_key(KEY_MAPPING[key], True)

    def _key_release(self, event):
        if self._closing:
            return
        key = event.keysym.lower()
        if key in self._pressed_keys:
            self._pressed_keys.remove(key)
            self.emulator.set_key(KEY_MAPPING[key], False)

    def _frame(self):
        import tkinter as tk

        if self._closing:
            return
        try:
            if self.fault is None:
                try:
                    self.emulator.run(max_cycles=self.cycles_per_frame)
                except Chip8Error as e:
                    self.fault = e
                self._update_sound()
            self._draw()
            self._update_status()
            self.root.after(FRAME_INTERVAL_MS, self._frame)
        except tk.TclError:
            # Window was destroyed between frames
            self._closing = True

    def _update_sound(self):
        active = self.emulator.sound_active
        if active and not self._sound_was_active:
            self.root.bell()
        self._sound_was_active = active

    def _draw(self):
        self.canvas.delete("all")
        scale = self.scale
        ys, xs = np.nonzero(self.emulator.machine.display)
        for y, x in zip(ys.tolist(), xs.tolist()):
            x1 = x * scale
            y1 = y * scale
            self.canvas.create_rectangle(x1, y1, x1 + scale, y1 + scale,
                                         fill='white', outline='white')

    def _update_status(self):
        machine = self.emulator.machine
        lines = [
            f"PC: 0x{machine.program_counter:03X}",
            f"I: 0x{machine.index_register:03X}",
            f"Instructions: {self.emulator.stats['instructions_executed']}",
        ]
        if self.emulator.waiting_for_key:
            lines.append("Waiting for key")
        if self.fault is not None:
            lines.append(f"Crashed: {self.fault}")
        self.status.config(text="\n".join(lines))
