"""
Test cases for the ScratchCardWidget lifecycle
"""

# pylint: disable=protected-access
from concurrent.futures import Future
from unittest import TestCase
from unittest.mock import MagicMock, patch

from scratchcard.dispatch import ImmediateDispatcher
from scratchcard.models import CardStatus, PointerEvent, SurfaceBounds, Touch
from scratchcard.scheduler import ManualScheduler
from scratchcard.state import RevealState
from scratchcard.widget import ScratchCardWidget
from tests.factories import ScratchCardFactory, ledger_for, small_config


def ev(x, y):
    return PointerEvent(client_x=x, client_y=y)


######################################################################
#  B A S E   T E S T   C A S E
######################################################################
class WidgetTestCase(TestCase):
    """One pending card on a 100x60 surface"""

    status = CardStatus.PENDING
    config = {}

    def setUp(self):
        self.card = ScratchCardFactory(status=self.status, amount=42)
        self.ledger = ledger_for(self.card)
        self.sched = ManualScheduler()
        self.notifier = MagicMock()
        self.widget = self._widget()

    def tearDown(self):
        self.widget.dispose()

    def _widget(self, dispatcher=None):
        return ScratchCardWidget(self.card, self.ledger, self.sched, dispatcher or ImmediateDispatcher(),
                                 self.notifier, small_config(**self.config), rng=0)

    def frames(self, n):
        for _ in range(n):
            self.sched.advance_frame()


######################################################################
#  L I F E C Y C L E
######################################################################
class TestLifecycle(WidgetTestCase):
    """init / relayout / dispose"""

    def test_init(self):
        """It should allocate an opaque buffer and start the animation"""
        self.assertTrue(self.widget.init(100, 60))
        self.assertTrue(self.widget.initialized)
        self.assertEqual(self.widget.surface.shape, (60, 100))
        self.assertTrue((self.widget.surface.buffer[..., 3] == 255).all())
        self.assertTrue(self.widget.animator.running)
        self.assertEqual(self.widget.render_rgba().shape, (60, 100, 4))

    def test_init_with_pixel_ratio(self):
        """It should size the buffer at backing resolution"""
        self.widget.init(100, 60, pixel_ratio=2.0)
        self.assertEqual(self.widget.surface.shape, (120, 200))

    def test_init_without_size(self):
        """It should wait for a layout size"""
        self.assertFalse(self.widget.init(0, 60))
        self.assertFalse(self.widget.initialized)
        self.assertIsNone(self.widget.surface)
        self.assertFalse(self.widget.pointer_down(ev(10, 10)))
        self.assertTrue(self.widget.relayout(SurfaceBounds(0, 0, 100, 60)))
        self.assertTrue(self.widget.initialized)
        self.assertTrue(self.widget.surface.ready)

    def test_relayout(self):
        """It should remap coordinates and keep the erased area on resize"""
        self.widget.init(100, 60)
        self.widget.pointer_down(ev(10, 10))
        self.widget.pointer_up()
        self.assertTrue(self.widget.relayout(SurfaceBounds(20, 30, 200, 120)))
        self.assertEqual(self.widget.surface.shape, (120, 200))
        self.assertTrue(self.widget.surface.erased_mask()[20, 20])
        self.assertFalse(self.widget.surface.erased_mask()[100, 180])
        self.widget.pointer_down(ev(20 + 180, 30 + 100))
        self.assertTrue(self.widget.surface.erased_mask()[100, 180])

    def test_dispose(self):
        """It should cancel every scheduled task on dispose"""
        self.widget.init(100, 60)
        self.widget.pointer_down(ev(10, 10))
        self.widget.pointer_move(ev(20, 10))
        self.widget.pointer_up()
        self.assertGreater(self.sched.pending, 0)
        self.widget.dispose()
        self.assertEqual(self.sched.pending, 0)
        self.assertTrue(self.widget.disposed)
        self.assertIsNone(self.widget.surface)
        self.assertTrue(self.widget.machine.closed)
        self.widget.dispose()
        self.assertFalse(self.widget.pointer_down(ev(10, 10)))
        self.assertRaises(RuntimeError, self.widget.init, 100, 60)

    def test_context_manager(self):
        """It should dispose on leaving a with-block"""
        with self._widget() as widget:
            widget.init(100, 60)
        self.assertTrue(widget.disposed)
        self.assertEqual(self.sched.pending, 0)


class TestRevealedCard(WidgetTestCase):
    """A card that is already revealed"""

    status = CardStatus.REVEALED

    def test_no_surface(self):
        """It should not allocate a buffer for a revealed card"""
        self.assertTrue(self.widget.init(100, 60))
        self.assertTrue(self.widget.initialized)
        self.assertIsNone(self.widget.surface)
        self.assertIsNone(self.widget.render_rgba())
        self.assertFalse(self.widget.pointer_down(ev(10, 10)))
        self.assertEqual(self.widget.amount, 42)
        self.assertEqual(self.sched.pending, 0)


######################################################################
#  S C R A T C H I N G
######################################################################
class TestScratching(WidgetTestCase):
    """Pointer input with a small brush"""

    config = {"brush_width": 6}

    def setUp(self):
        super().setUp()
        self.widget.init(100, 60)

    def test_touch_events(self):
        """It should erase under a touch point"""
        self.assertTrue(self.widget.pointer_down(PointerEvent(touches=[Touch(50, 30)])))
        self.assertTrue(self.widget.surface.erased_mask()[30, 50])

    def test_outside_press(self):
        """It should ignore a press outside the surface"""
        self.assertFalse(self.widget.pointer_down(ev(150, 30)))
        self.assertFalse(self.widget.session.active)
        self.assertFalse(self.widget.pointer_move(ev(50, 30)))

    def test_deferred_sampling(self):
        """It should sample only after the deferred frames"""
        self.widget.pointer_down(ev(50, 30))
        self.assertEqual(self.widget.progress.fraction, 0.0)
        self.frames(2)
        self.assertEqual(self.widget.progress.fraction, 0.0)
        self.frames(1)
        self.assertGreater(self.widget.progress.fraction, 0.0)

    def test_sampling_throttled(self):
        """It should sample once for many moves in one frame"""
        with patch.object(self.widget.estimator, "sample", wraps=self.widget.estimator.sample) as sample:
            self.widget.pointer_down(ev(10, 10))
            for x in range(12, 40, 2):
                self.widget.pointer_move(ev(x, 10))
            self.frames(1)
            self.widget.pointer_move(ev(45, 10))
            self.frames(2)
            self.assertEqual(sample.call_count, 1)

    def test_final_samples(self):
        """It should sample again after the gesture ends"""
        with patch.object(self.widget.estimator, "sample", wraps=self.widget.estimator.sample) as sample:
            self.widget.pointer_down(ev(50, 30))
            self.frames(3)
            self.assertEqual(sample.call_count, 1)
            self.widget.pointer_up()
            self.sched.advance(150)
            self.assertEqual(sample.call_count, 2)
            self.sched.advance(300)
            self.assertEqual(sample.call_count, 3)

    def test_animation_pauses_while_scratching(self):
        """It should stop the shimmer on press and resume after the cooldown"""
        self.assertTrue(self.widget.animator.running)
        self.widget.pointer_down(ev(50, 30))
        self.assertFalse(self.widget.animator.running)
        self.widget.pointer_up()
        self.sched.advance(599)
        self.assertFalse(self.widget.animator.running)
        self.sched.advance(1)
        self.assertTrue(self.widget.animator.running)

    def test_new_press_cancels_resume(self):
        """It should not resume the shimmer during a new gesture"""
        self.widget.pointer_down(ev(50, 30))
        self.widget.pointer_up()
        self.sched.advance(300)
        self.widget.pointer_down(ev(60, 30))
        self.sched.advance(400)
        self.assertFalse(self.widget.animator.running)

    def test_drag_off_surface(self):
        """It should not draw a line across a drag that left the surface"""
        self.widget.pointer_down(ev(10, 10))
        self.assertFalse(self.widget.pointer_move(ev(-5, 10)))
        self.assertTrue(self.widget.pointer_move(ev(50, 10)))
        mask = self.widget.surface.erased_mask()
        self.assertTrue(mask[10, 10])
        self.assertTrue(mask[10, 50])
        self.assertFalse(mask[10, 30])

    def test_listeners(self):
        """It should tell the host to repaint after a stroke"""
        seen = []
        self.widget.add_listener(seen.append)
        self.widget.pointer_down(ev(50, 30))
        self.assertIn(self.widget, seen)

    def test_below_threshold(self):
        """It should stay pending below the threshold"""
        self.widget.pointer_down(ev(50, 30))
        self.widget.pointer_up()
        self.sched.advance(1000)
        self.assertEqual(self.widget.state, RevealState.PENDING)
        self.assertEqual(self.ledger.count("reveal"), 0)


######################################################################
#  R E V E A L
######################################################################
class TestReveal(WidgetTestCase):
    """End-to-end reveal and credit"""

    def test_swipe_reveals(self):
        """It should auto-reveal after one wide swipe"""
        self.widget.init(100, 60)
        self.widget.pointer_down(ev(0, 30))
        self.widget.pointer_move(ev(99, 30))
        self.assertEqual(self.widget.state, RevealState.PENDING)
        self.frames(3)
        self.assertGreaterEqual(self.widget.progress.fraction, 70.0)
        self.assertEqual(self.widget.state, RevealState.REVEALED)
        self.assertEqual(self.ledger.count("reveal", self.card.id), 1)
        self.assertEqual(self.card.status, CardStatus.REVEALED)
        self.assertEqual(self.widget.amount, 42)
        self.assertIsNone(self.widget.surface)
        self.assertFalse(self.widget.session.active)
        self.widget.pointer_up()
        self.sched.advance(1000)
        self.assertEqual(self.ledger.count("reveal"), 1)
        self.assertEqual(self.sched.pending, 0)

    def test_manual_reveal_and_credit(self):
        """It should credit exactly once after a manual reveal"""
        self.widget.init(100, 60)
        self.widget.reveal()
        self.sched.run_pending()
        self.assertEqual(self.widget.state, RevealState.REVEALED)
        self.assertIsNone(self.widget.surface)
        self.widget.credit()
        self.sched.run_pending()
        self.assertEqual(self.widget.state, RevealState.CREDITED)
        self.assertEqual(self.ledger.balance, 42)
        self.widget.credit()
        self.sched.run_pending()
        self.assertEqual(self.ledger.count("credit"), 1)
        self.assertEqual(self.ledger.balance, 42)

    def test_dispose_mid_flight(self):
        """It should drop a reveal result that arrives after dispose"""
        net = Future()
        dispatcher = MagicMock()
        dispatcher.submit.return_value = net
        widget = self._widget(dispatcher)
        widget.init(100, 60)
        fut = widget.reveal()
        self.assertEqual(widget.state, RevealState.REVEAL_IN_FLIGHT)
        widget.dispose()
        net.set_result({"amount": 42, "message": None, "status": "revealed"})
        self.sched.run_pending()
        self.assertTrue(fut.cancelled())
        self.assertEqual(self.card.status, CardStatus.PENDING)
        self.notifier.success.assert_not_called()
