import argparse, logging

import tkinter as tk
from tkinter import messagebox
from PIL import Image, ImageTk

from scratchcard.config import load_config
from scratchcard.dispatch import ThreadDispatcher
from scratchcard.ledger import InMemoryLedger
from scratchcard.models import CardStatus, PointerEvent, ScratchCard, SurfaceBounds
from scratchcard.notify import Notifier, format_amount
from scratchcard.reconciler import RewardReconciler
from scratchcard.scheduler import TkScheduler
from scratchcard.state import RevealState
from scratchcard.widget import ScratchCardWidget

logger = logging.getLogger(__name__)

# Parameters
COLORS = {
    "bg":        "#fff7ed",
    "text":      "#1f2937",
    "muted":     "#6b7280",
    "line":      "#be185d",
    "prize_bg":  "#fdf2f8",
    "accent":    "#db2777",
    "ok":        "#047857",
}
STATUS_TEXT = {
    RevealState.PENDING:          "Scratch to reveal! Auto-credited after delivery.",
    RevealState.REVEAL_IN_FLIGHT: "Revealing...",
    RevealState.REVEALED:         "Auto-credited after delivery",
    RevealState.CREDITED:         "Credited",
    RevealState.EXPIRED:          "Expired",
}


class TkNotifier(Notifier):
    def __init__(self, root):
        self.root = root

    def success(self, title, message):
        messagebox.showinfo(title, message, parent=self.root)

    def error(self, title, message):
        messagebox.showerror(title, message, parent=self.root)


# GUI
class App(tk.Tk):
    def __init__(self, card: ScratchCard, reconciler, config, pixel_ratio=1.0):
        super().__init__()
        self.title("Scratch & Win")
        self.geometry("420x520")
        self.minsize(320, 420)
        self.configure(bg=COLORS["bg"])

        self.config_ = config
        self.pixel_ratio = pixel_ratio
        self.overlay_tk = None
        self.overlay_item = None
        self.status_item = None
        self._last_state = None

        # Layout params
        self.margin = 20
        self.header_h = 48
        self.ops_h = 56
        self.status_h = 48

        # Canvas
        self.canvas = tk.Canvas(self, highlightthickness=0, bd=0, bg=COLORS["bg"])
        self.canvas.pack(fill="both", expand=True)

        self.scheduler = TkScheduler(self, frame_ms=config.frame_ms)
        self.scheduler.start()
        self.card_widget = ScratchCardWidget(card, reconciler, self.scheduler, ThreadDispatcher(),
                                             TkNotifier(self), config)
        self.card_widget.add_listener(self._on_card_change)

        # Bindings
        self.bind("<Configure>", self._on_resize)
        self.canvas.bind("<ButtonPress-1>", self._on_press)
        self.canvas.bind("<B1-Motion>", self._on_drag)
        self.canvas.bind("<ButtonRelease-1>", self._on_release)

        # Shortcuts
        self.bind("<Return>", lambda e: self.card_widget.reveal())
        self.bind("<Control-c>", lambda e: self.card_widget.credit())
        self.bind("<Escape>", lambda e: self.destroy())

        self._redraw()

    # Layout
    def _zones(self, W, H):
        m = self.margin
        header = (m, m, W - m, m + self.header_h)
        card_top = header[3] + 8
        card_bottom = H - m - self.ops_h - self.status_h - 8
        card = (m, card_top, W - m, max(card_top + 80, card_bottom))
        ops = (m, card[3] + 8, W - m, card[3] + 8 + self.ops_h)
        status = (m, ops[3], W - m, ops[3] + self.status_h)
        return header, card, ops, status

    def _card_bounds(self):
        W, H = max(1, self.winfo_width()), max(1, self.winfo_height())
        _, card, _, _ = self._zones(W, H)
        return SurfaceBounds(card[0], card[1], card[2] - card[0], card[3] - card[1])

    # Drawing helpers
    def _draw_text(self, x, y, text, size=12, weight="normal", anchor="nw", color=None):
        if color is None: color = COLORS["text"]
        return self.canvas.create_text(x, y, text=text, fill=color, font=("Helvetica", size, weight), anchor=anchor)

    def _draw_button(self, rect, text, tag):
        x1, y1, x2, y2 = rect
        self.canvas.create_rectangle(x1, y1, x2, y2, outline=COLORS["line"], width=2, fill="", tags=(tag,))
        tid = self._draw_text((x1+x2)//2, (y1+y2)//2, text, size=11, weight="bold", anchor="c")
        self.canvas.addtag_withtag(tag, tid)

    def _overlay_image(self, bounds):
        rgba = self.card_widget.render_rgba()
        if rgba is None:
            return None
        img = Image.fromarray(rgba, "RGBA")
        size = (max(1, int(bounds.width)), max(1, int(bounds.height)))
        if img.size != size:
            img = img.resize(size, Image.BILINEAR)
        return ImageTk.PhotoImage(img)

    def _status_line(self):
        w = self.card_widget
        line = STATUS_TEXT[w.state]
        if w.state == RevealState.PENDING and w.has_scratched:
            line = f"{line}  ({w.progress.fraction:.1f}% scratched)"
        return line

    # Redraw everything
    def _redraw(self):
        c = self.canvas
        c.delete("all")
        self.overlay_item = None
        W, H = max(1, self.winfo_width()), max(1, self.winfo_height())
        header, card, ops, status = self._zones(W, H)
        w = self.card_widget

        self._draw_text(header[0], header[1] + 6, "Scratch & Win", size=16, weight="bold")
        order = w.card.order_number or f"Card #{w.card.id}"
        self._draw_text(header[2], header[1] + 10, order, size=11, anchor="ne", color=COLORS["muted"])

        # Prize panel under the overlay
        c.create_rectangle(*card, outline=COLORS["line"], width=2, fill=COLORS["prize_bg"])
        cx, cy = (card[0]+card[2])//2, (card[1]+card[3])//2
        if w.state in (RevealState.REVEALED, RevealState.CREDITED):
            self._draw_text(cx, cy - 14, format_amount(w.amount), size=32, weight="bold", anchor="c", color=COLORS["accent"])
            self._draw_text(cx, cy + 26, "Cashback", size=12, anchor="c", color=COLORS["muted"])
        else:
            self._draw_text(cx, cy, "Better luck scratching!", size=12, anchor="c", color=COLORS["muted"])

        bounds = SurfaceBounds(card[0], card[1], card[2] - card[0], card[3] - card[1])
        self.overlay_tk = self._overlay_image(bounds)
        if self.overlay_tk is not None:
            self.overlay_item = c.create_image(card[0], card[1], anchor="nw", image=self.overlay_tk)

        bx = ops[0]
        by = ops[1] + (ops[3]-ops[1]-34)//2
        if w.state == RevealState.PENDING:
            self._draw_button((bx, by, bx+130, by+34), "Reveal (Enter)", "reveal")
            bx += 140
        if w.state == RevealState.REVEALED:
            self._draw_button((bx, by, bx+130, by+34), "Credit (Ctrl-C)", "credit")
            bx += 140
        self._draw_button((bx, by, bx+100, by+34), "Exit (Esc)", "exit")

        color = COLORS["ok"] if w.state == RevealState.CREDITED else COLORS["muted"]
        self.status_item = self._draw_text(status[0], status[1] + 10, self._status_line(), size=11, color=color)
        self._last_state = w.state

    def _refresh_overlay(self):
        if self.overlay_item is None:
            self._redraw()
            return
        self.overlay_tk = self._overlay_image(self._card_bounds())
        if self.overlay_tk is not None:
            self.canvas.itemconfig(self.overlay_item, image=self.overlay_tk)
        if self.status_item is not None:
            self.canvas.itemconfig(self.status_item, text=self._status_line())

    def _on_card_change(self, widget):
        if widget.state != self._last_state:
            self._redraw()
        else:
            self._refresh_overlay()

    # Events
    def _event(self, e):
        return PointerEvent(client_x=e.x, client_y=e.y)

    def _on_press(self, e):
        if self.card_widget.pointer_down(self._event(e)):
            return
        tags = set()
        for it in self.canvas.find_overlapping(e.x, e.y, e.x, e.y):
            tags.update(self.canvas.gettags(it))
        if "reveal" in tags:
            self.card_widget.reveal()
        elif "credit" in tags:
            self.card_widget.credit()
        elif "exit" in tags:
            self.destroy()

    def _on_drag(self, e):
        self.card_widget.pointer_move(self._event(e))

    def _on_release(self, e):
        self.card_widget.pointer_up(self._event(e))

    def _on_resize(self, event):
        if event.widget is not self:
            return
        bounds = self._card_bounds()
        if not self.card_widget.initialized:
            self.card_widget.init(bounds.width, bounds.height, self.pixel_ratio, (bounds.left, bounds.top))
        else:
            self.card_widget.relayout(bounds, self.pixel_ratio)
        self._redraw()

    def destroy(self):
        try:
            self.card_widget.dispose()
        finally:
            self.scheduler.close()
            super().destroy()


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Scratch card reveal demo")
    p.add_argument("--card-id", type=int, default=1)
    p.add_argument("--status", default="pending", choices=[s.value for s in CardStatus])
    p.add_argument("--offline", action="store_true", help="use an in-memory ledger instead of the API")
    p.add_argument("--amount", type=int, default=42, help="cashback amount for --offline")
    p.add_argument("--pixel-ratio", type=float, default=1.0)
    p.add_argument("--api-url", default=None)
    p.add_argument("-v", "--verbose", action="store_true")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.INFO,
                        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    overrides = {"api_base_url": args.api_url} if args.api_url else {}
    config = load_config(**overrides)
    if args.offline:
        reconciler = InMemoryLedger()
        reconciler.add_card(args.card_id, args.amount, status=args.status)
    else:
        reconciler = RewardReconciler(config)
    card = ScratchCard(args.card_id, status=args.status, _amount=float(args.amount) if args.offline else None)
    app = App(card, reconciler, config, pixel_ratio=args.pixel_ratio)
    app.mainloop()


if __name__ == "__main__":
    main()
