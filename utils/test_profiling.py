import concurrent.futures
import math

import pytest

from utils.profiling import Timer, TimerError, Timing, just_time


def test_same_tag_same_handle():
    timing = Timing()
    a = timing.get_handle('a')
    b = timing.get_handle('b')

    assert a != b
    assert timing.get_handle('a') == a
    assert timing.get_tag(b) == 'b'


def test_unknown_handle():
    timing = Timing()
    with pytest.raises(TimerError):
        timing.get_tag(3)
    with pytest.raises(TimerError):
        timing.get_num_samples(3)


def test_statistics_of_constant_samples():
    timing = Timing()
    for _ in range(5):
        timing.add_time('const', 0.25)

    assert timing.get_num_samples('const') == 5
    assert math.isclose(timing.get_total_seconds('const'), 1.25)
    assert math.isclose(timing.get_mean_seconds('const'), 0.25)
    assert math.isclose(timing.get_variance_seconds('const'), 0., abs_tol=1e-15)
    assert timing.get_min_seconds('const') == timing.get_max_seconds('const') == 0.25
    assert math.isclose(timing.get_hz('const'), 4.)


def test_hz_of_zero_duration_samples_is_inf():
    timing = Timing()
    timing.add_time('instant', 0.0)
    assert timing.get_hz('instant') == math.inf

    timing.add_time('instant', 0.5)
    assert math.isclose(timing.get_hz('instant'), 4.)


def test_statistics_of_varying_samples():
    timing = Timing()
    for x in [1., 2., 3., 4.]:
        timing.add_time('x', x)

    assert math.isclose(timing.get_mean_seconds('x'), 2.5)
    # population variance
    assert math.isclose(timing.get_variance_seconds('x'), 1.25)
    assert timing.get_min_seconds('x') == 1.
    assert timing.get_max_seconds('x') == 4.


def test_no_samples_is_nan():
    timing = Timing()
    handle = timing.get_handle('empty')

    assert timing.get_num_samples(handle) == 0
    assert math.isnan(timing.get_mean_seconds(handle))
    assert math.isnan(timing.get_variance_seconds(handle))


def test_start_stop_pairs():
    timing = Timing()
    handle = timing.get_handle('pairs')

    for _ in range(3):
        timing.start(handle)
        assert timing.is_running(handle)
        assert timing.stop(handle) >= 0.

    assert not timing.is_running(handle)
    assert timing.get_num_samples(handle) == 3


def test_double_start_and_stop_raise():
    timing = Timing()
    handle = timing.get_handle('double')

    timing.start(handle)
    with pytest.raises(TimerError):
        timing.start(handle)
    timing.stop(handle)
    with pytest.raises(TimerError):
        timing.stop(handle)

    timer = Timer(timing, handle)
    with pytest.raises(TimerError):
        timer.start()
    timer.stop()
    with pytest.raises(TimerError):
        timer.stop()

    assert timing.get_num_samples(handle) == 2


def test_timer_context_and_discard():
    timing = Timing()

    with Timer(timing, 'ctx', construct_stopped=True) as timer:
        assert timer.is_timing()
    assert not timer.is_timing()
    assert timing.get_num_samples('ctx') == 1

    timer = Timer(timing, 'ctx')
    timer.discard_timing()
    assert timing.get_num_samples('ctx') == 1

    timing.reset('ctx')
    assert timing.get_num_samples('ctx') == 0


def test_get_handle_from_many_threads():
    timing = Timing()
    tags = [f'tag_{i % 10}' for i in range(400)]

    with concurrent.futures.ThreadPoolExecutor(max_workers=8) as executor:
        handles = list(executor.map(timing.get_handle, tags))

    assert sorted(set(handles)) == list(range(10))
    for tag, handle in zip(tags, handles):
        assert timing.get_handle(tag) == handle


def test_seconds_to_time_string():
    assert Timing.seconds_to_time_string(3723.5) == '01:02:03.500000'
    assert Timing.seconds_to_time_string(0.25) == '00:00:00.250000'


def test_reports():
    timing = Timing()
    timing.add_time('evaluate', 0.5)
    timing.get_handle('never_used')

    text = timing.print()
    assert 'evaluate' in text and 'never_used' in text
    assert '00:00:00.500000' in text

    df = timing.to_df()
    assert list(df.index) == ['evaluate', 'never_used']
    assert df.loc['evaluate', 'num_samples'] == 1
    assert math.isclose(df.loc['evaluate', 'mean_s'], 0.5)
    assert math.isnan(df.loc['never_used', 'mean_s'])


def test_just_time_records_into_registry():
    timing = Timing()
    with just_time('block', verbose=False, timing=timing) as state:
        pass

    assert state['elapsed'] >= 0.
    assert timing.get_num_samples('block') == 1
