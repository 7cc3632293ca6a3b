import threading

from market_intel.core.errors import ProviderError
from market_intel.models.datatypes import Mode, Sentiment
from market_intel.pipeline.analysis_chain import GENERIC_SUMMARY, AnalysisChain, build_prompt

GOOD_TEXT = "Market Sentiment: BEARISH\nProbability: 72%\nAnalysis: Gold rally stalls on profit-taking."


def test_first_success_wins_and_later_providers_are_not_called(fake_generator, make_item):
    first = fake_generator("gemini/gemini-2.0-flash", GOOD_TEXT)
    second = fake_generator("openai/gpt-4o-mini", "Market Sentiment: BULLISH")
    headlines = [make_item("Gold News: Profit-Taking Stalls Gold Rally")]

    result = AnalysisChain([first, second]).analyze(headlines, Mode.DAILY)

    assert result.sentiment is Sentiment.BEARISH
    assert result.probability == 72
    assert result.summary == "Gold rally stalls on profit-taking."
    assert result.provider == "gemini/gemini-2.0-flash"
    assert not result.is_fallback
    assert second.prompts == []


def test_advances_past_failing_providers(fake_generator, make_item):
    failing = fake_generator("gemini/gemini-2.0-flash", fail=True)
    empty = fake_generator("gemini/gemini-1.5-flash", "   ")
    working = fake_generator("openai/gpt-4o-mini", GOOD_TEXT)

    result = AnalysisChain([failing, empty, working]).analyze([make_item("x")], Mode.WEEKLY)

    assert result.provider == "openai/gpt-4o-mini"
    assert len(failing.prompts) == len(empty.prompts) == len(working.prompts) == 1


def test_all_providers_failing_returns_fallback_from_first_headline(fake_generator, make_item):
    chain = AnalysisChain([fake_generator("a/1", fail=True), fake_generator("b/2", fail=True)])
    headlines = [make_item("Fed holds rates"), make_item("Oil slips")]

    result = chain.analyze(headlines, Mode.DAILY)

    assert result.is_fallback
    assert result.sentiment is Sentiment.NEUTRAL
    assert result.probability == 50
    assert "Fed holds rates" in result.summary


def test_no_provider_and_no_headlines_gives_generic_fallback():
    result = AnalysisChain([]).analyze([], Mode.DAILY)
    assert result.sentiment is Sentiment.NEUTRAL
    assert result.probability == 50
    assert result.summary == GENERIC_SUMMARY
    assert result.is_fallback


def test_every_failure_prefix_yields_valid_result(fake_generator, make_item):
    texts = [GOOD_TEXT, "Market Sentiment: Sideways\nProbability: 250%", "no structure at all"]
    for text in texts:
        for failures in range(4):
            generators = [fake_generator(f"p/{i}", fail=True) for i in range(failures)]
            generators += [fake_generator("p/ok", text)]
            result = AnalysisChain(generators[:3]).analyze([make_item("Gold")], Mode.DAILY)
            assert result.sentiment in set(Sentiment)
            assert 0 <= result.probability <= 100


def test_probability_is_clamped_by_chain(fake_generator):
    chain = AnalysisChain([fake_generator("p/1", "Market Sentiment: BULLISH\nProbability: 150%\nUp.")])
    result = chain.analyze([], Mode.DAILY)
    assert result.probability == 100
    assert result.sentiment is Sentiment.BULLISH


def test_unexpected_exception_is_treated_as_provider_failure(fake_generator):
    class Exploding(fake_generator):
        def generate(self, prompt, timeout):
            raise RuntimeError("socket closed")

    chain = AnalysisChain([Exploding("x/1"), fake_generator("y/2", GOOD_TEXT)])
    assert chain.analyze([], Mode.DAILY).provider == "y/2"


def test_prompt_is_parameterized_by_mode_and_headlines(make_item):
    headlines = [make_item("Gold climbs", summary="Safe-haven demand")]
    daily = build_prompt(headlines, Mode.DAILY)
    weekly = build_prompt(headlines, Mode.WEEKLY)

    assert "Gold climbs: Safe-haven demand" in daily
    assert "today's trading session" in daily
    assert "the coming trading week" in weekly
    assert "Market Sentiment:" in daily and "Probability:" in daily


def test_cancelled_chain_calls_no_provider(fake_generator, make_item):
    cancel = threading.Event()
    cancel.set()
    generator = fake_generator("gemini/gemini-2.0-flash", GOOD_TEXT)

    result = AnalysisChain([generator]).analyze([make_item("Fed holds rates")], Mode.DAILY, cancel=cancel)

    assert generator.prompts == []
    assert result.is_fallback
    assert "Fed holds rates" in result.summary


def test_cancel_between_providers_stops_the_chain(fake_generator):
    cancel = threading.Event()

    class FailThenCancel(fake_generator):
        def generate(self, prompt, timeout):
            cancel.set()
            raise ProviderError(self.identifier, "HTTP 504")

    second = fake_generator("openai/gpt-4o-mini", GOOD_TEXT)
    result = AnalysisChain([FailThenCancel("gemini/gemini-2.0-flash"), second]).analyze([], Mode.DAILY, cancel=cancel)

    assert second.prompts == []
    assert result.is_fallback
