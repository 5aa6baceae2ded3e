import cv2, numpy as np

# Gold -> orange-gold -> cream bands along the diagonal (BGR)
GOLD   = (0, 215, 255)
ORANGE = (0, 165, 255)
CREAM  = (220, 248, 255)
GRADIENT_STOPS = [
    (0.00, GOLD), (0.15, ORANGE), (0.30, GOLD), (0.45, CREAM),
    (0.60, GOLD), (0.75, ORANGE), (0.90, CREAM), (1.00, GOLD),
]
# Chrome shine: white strength by normalised distance from the hot spot
SHINE_STOPS = [(0.0, 0.40), (0.15, 0.30), (0.30, 0.20), (0.50, 0.10), (0.70, 0.08), (1.0, 0.15)]


def _rng(rng):
    return rng if isinstance(rng, np.random.Generator) else np.random.default_rng(rng)


def _fbm_like(h, w, rng, octaves=3):
    # Multi-scale bicubic upsampled noise, amplitude halves per octave, normalised to [0,1]
    acc, amp = np.zeros((h, w), np.float32), 1.0
    for o in range(octaves):
        hh = max(2, h//(8>>o)+1)
        ww = max(2, w//(8>>o)+1)
        r = cv2.resize(rng.random((hh, ww)).astype(np.float32), (w, h), interpolation=cv2.INTER_CUBIC)
        acc += amp * r
        amp *= 0.5
    rng_ = float(np.ptp(acc))
    if rng_ < 1e-6:
        return np.zeros((h, w), np.float32)
    return (acc - float(acc.min())) / (rng_ + 1e-6)


def _linear_gradient(h, w):
    # Projection of each pixel on the (0,0)->(w,h) axis
    y, x = np.mgrid[0:h, 0:w].astype(np.float32)
    t = (x*w + y*h) / float(max(1, w*w + h*h))
    pos = [s[0] for s in GRADIENT_STOPS]
    out = np.empty((h, w, 3), np.float32)
    for c in range(3):
        out[..., c] = np.interp(t, pos, [s[1][c] for s in GRADIENT_STOPS])
    return out


def _shine(h, w):
    y, x = np.ogrid[:h, :w]
    d = np.sqrt((x - 0.3*w)**2 + (y - 0.3*h)**2) / (max(w, h) * 1.8)
    return np.interp(np.clip(d, 0, 1), [s[0] for s in SHINE_STOPS], [s[1] for s in SHINE_STOPS]).astype(np.float32)


def metallic_texture(h, w, rng=None, grain=35.0):
    """Opaque BGRA overlay: gradient, chrome shine, grain, brushed lines, sparkles."""
    if h <= 0 or w <= 0:
        raise ValueError(f"texture size must be positive, got {w}x{h}")
    rng = _rng(rng)
    img = _linear_gradient(h, w)

    a = _shine(h, w)[..., None]
    img = img*(1-a) + 255.0*a

    # Fine grain, slightly weaker on G and B
    noise = (rng.random((h, w), dtype=np.float32) - 0.5) * grain
    img += noise[..., None] * np.array([0.8, 0.9, 1.0], np.float32)
    # Low-frequency mottling
    img += (_fbm_like(h, w, rng) - 0.5)[..., None] * 12.0

    # Brushed metal: diagonal hairlines every 4 px
    lines = np.zeros((h, w), np.float32)
    for i in range(-h, w + h, 4):
        cv2.line(lines, (i, 0), (i + h, h), 1.0, 1)
    img = img*(1 - 0.15*lines[..., None]) + 255.0*0.15*lines[..., None]

    # Sparkles
    dots = np.zeros((h, w), np.float32)
    for _ in range(60):
        cx, cy = int(rng.random()*w), int(rng.random()*h)
        cv2.circle(dots, (cx, cy), max(1, int(round(rng.random()*2 + 0.5))), 1.0, -1)
    img = img*(1 - 0.5*dots[..., None]) + 255.0*0.5*dots[..., None]

    out = np.empty((h, w, 4), np.uint8)
    out[..., :3] = np.clip(img, 0, 255).astype(np.uint8)
    out[..., 3] = 255
    return out


def radial_falloff(h, w):
    """1 at the centre fading to 0 at 0.8*max(w,h); shape of the idle pulse."""
    y, x = np.ogrid[:h, :w]
    d = np.sqrt((x - 0.5*w)**2 + (y - 0.5*h)**2) / (max(w, h) * 0.8)
    return np.clip(1.0 - d, 0, 1).astype(np.float32)


def apply_pulse(base_bgr, falloff, intensity, out_bgra):
    """Write base lifted toward white by falloff*intensity into out_bgra, colour only.

    Pixels whose alpha is 0 in out_bgra are left untouched.
    """
    lit = base_bgr.astype(np.float32)
    k = (falloff * float(intensity))[..., None]
    lit = lit*(1-k) + 255.0*k
    keep = out_bgra[..., 3] != 0
    out_bgra[..., :3][keep] = np.clip(lit, 0, 255).astype(np.uint8)[keep]
    return out_bgra
