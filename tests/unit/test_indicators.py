import pytest

from finsight_agent.market import indicators


def test_sma_emits_one_value_per_full_window() -> None:
    assert indicators.sma([1.0, 2.0, 3.0, 4.0], 2) == [1.5, 2.5, 3.5]
    assert indicators.sma([1.0], 3) == []


def test_sma_rejects_non_positive_period() -> None:
    with pytest.raises(ValueError):
        indicators.sma([1.0, 2.0], 0)


def test_ema_is_seeded_with_sma() -> None:
    values = [2.0, 4.0, 6.0, 8.0]

    result = indicators.ema(values, 3)

    assert result[0] == pytest.approx(4.0)
    assert result[1] == pytest.approx(6.0)
    assert indicators.ema([1.0], 3) == []


def test_rsi_edges() -> None:
    rising = [float(value) for value in range(1, 20)]

    assert indicators.rsi(rising[:10]) == []
    assert indicators.rsi(rising)[-1] == 100.0


def test_rsi_stays_in_range_for_mixed_series() -> None:
    closes = [44.0, 44.3, 44.1, 43.6, 44.3, 44.8, 45.1, 45.4, 45.8, 46.1, 45.9, 46.2, 45.6, 46.3, 46.0, 46.4]

    values = indicators.rsi(closes)

    assert len(values) == len(closes) - 14
    assert all(0.0 <= value <= 100.0 for value in values)


def test_macd_lengths_line_up() -> None:
    closes = [100.0 + (i % 7) for i in range(60)]

    result = indicators.macd(closes)

    assert len(result.macd) == 60 - 25
    assert len(result.signal) == len(result.macd) - 8
    assert len(result.histogram) == len(result.signal)
    assert result.histogram[-1] == pytest.approx(result.macd[-1] - result.signal[-1])


def test_macd_short_series_is_empty() -> None:
    result = indicators.macd([1.0] * 10)

    assert result.macd == []
    assert result.signal == []
    assert result.histogram == []


def test_bollinger_bands_collapse_on_flat_series() -> None:
    bands = indicators.bollinger_bands([10.0] * 25)

    assert len(bands.middle) == 6
    assert bands.upper == bands.middle == bands.lower


def test_volatility_and_last() -> None:
    assert indicators.volatility([5.0]) == 0.0
    assert indicators.volatility([2.0, 4.0]) == pytest.approx(1.0)
    assert indicators.last([]) is None
    assert indicators.last([1.0, 2.0]) == 2.0
