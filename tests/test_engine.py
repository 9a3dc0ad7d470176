import threading
from collections import Counter

import pytest

from webcrawler.crawler.engine import ParallelWebCrawler
from webcrawler.crawler.ignore import IgnoreRules
from webcrawler.crawler.parser import PageParseResult
from webcrawler.utils.config import CrawlerConfig

from conftest import FakePageParser, page


def make_crawler(parser, clock, timeout=60, max_depth=10, popular_word_count=10,
                 ignored=(), parallelism=4):
    return ParallelWebCrawler(
        page_parser=parser,
        timeout=timeout,
        popular_word_count=popular_word_count,
        max_depth=max_depth,
        ignore_rules=IgnoreRules(ignored),
        parallelism=parallelism,
        clock=clock
    )


def test_depth_two_stops_before_grandchild(simple_site, clock):
    parser = FakePageParser(simple_site)
    result = make_crawler(parser, clock, max_depth=2).crawl(['http://a'])

    assert sorted(parser.trace) == ['http://a', 'http://b', 'http://c']
    assert result.urls_visited == 3
    assert dict(result.word_counts) == {'apple': 3, 'banana': 4, 'cherry': 1}


def test_depth_three_reaches_grandchild(simple_site, clock):
    parser = FakePageParser(simple_site)
    result = make_crawler(parser, clock, max_depth=3).crawl(['http://a'])

    assert sorted(parser.trace) == ['http://a', 'http://b', 'http://c', 'http://d']
    assert result.urls_visited == 4
    assert result.word_counts['durian'] == 4


def test_zero_depth_visits_nothing(simple_site, clock):
    parser = FakePageParser(simple_site)
    result = make_crawler(parser, clock, max_depth=0).crawl(['http://a'])

    assert parser.trace == []
    assert result.urls_visited == 0


def test_zero_timeout_visits_nothing(simple_site, clock):
    parser = FakePageParser(simple_site)
    result = make_crawler(parser, clock, timeout=0).crawl(['http://a'])

    assert parser.trace == []
    assert result.urls_visited == 0
    assert dict(result.word_counts) == {}


def test_no_fetch_starts_after_deadline(simple_site, clock):
    # Every fetch takes 3 seconds of fake time against a 5 second budget
    parser = FakePageParser(simple_site, clock=clock, advance=3)
    deadline = clock() + 5
    result = make_crawler(parser, clock, timeout=5, parallelism=1).crawl(['http://a'])

    assert all(t < deadline for t in parser.fetch_times)
    assert result.urls_visited == 2
    assert len(parser.trace) == 2


def test_each_url_fetched_once_across_cycles_and_seeds(clock):
    pages = {
        'http://a': page(['http://b', 'http://c', 'http://a'], x=1),
        'http://b': page(['http://a', 'http://c', 'http://d'], x=1),
        'http://c': page(['http://b', 'http://d'], x=1),
        'http://d': page(['http://a'], x=1),
    }
    parser = FakePageParser(pages, max_delay=0.005, seed=7)
    result = make_crawler(parser, clock, parallelism=8).crawl(
        ['http://a', 'http://b', 'http://a', 'http://d']
    )

    counts = Counter(parser.trace)
    assert set(counts) == set(pages)
    assert all(n == 1 for n in counts.values())
    assert result.urls_visited == 4
    assert dict(result.word_counts) == {'x': 4}


def test_dedup_under_heavy_contention(clock):
    # Every page links to every page
    urls = [f'http://site/{i}' for i in range(40)]
    pages = {url: page(urls, word=1) for url in urls}
    parser = FakePageParser(pages, max_delay=0.002, seed=3)

    result = make_crawler(parser, clock, parallelism=16).crawl(urls)

    assert sorted(parser.trace) == sorted(urls)
    assert result.urls_visited == 40
    assert result.word_counts['word'] == 40


def test_word_totals_independent_of_interleaving(clock):
    pages = {
        'http://root': page([f'http://p{i}' for i in range(10)], common=1),
    }
    for i in range(10):
        pages[f'http://p{i}'] = page(
            [f'http://q{i}', f'http://p{(i + 1) % 10}'],
            common=i + 1, **{f'w{i}': i}
        )
        pages[f'http://q{i}'] = page([], common=2, shared=i)

    expected = None
    for seed in range(5):
        parser = FakePageParser(pages, max_delay=0.003, seed=seed)
        result = make_crawler(parser, clock, max_depth=50, popular_word_count=100,
                              parallelism=6).crawl(['http://root'])
        if expected is None:
            expected = dict(result.word_counts)
        assert dict(result.word_counts) == expected
        assert result.urls_visited == 21

    assert expected['common'] == 1 + sum(range(1, 11)) + 2 * 10
    assert expected['shared'] == sum(range(10))


def test_top_words_sorted_and_truncated(clock):
    pages = {'http://a': page([], a=5, b=5, c=3)}
    result = make_crawler(FakePageParser(pages), clock, popular_word_count=2).crawl(['http://a'])

    assert list(result.word_counts.items()) == [('a', 5), ('b', 5)]


def test_ignored_seed_is_not_visited(simple_site, clock):
    parser = FakePageParser(simple_site)
    result = make_crawler(parser, clock, ignored=[r'http://a']).crawl(['http://a'])

    assert parser.trace == []
    assert result.urls_visited == 0
    assert dict(result.word_counts) == {}


def test_ignored_link_is_skipped_but_siblings_crawled(simple_site, clock):
    parser = FakePageParser(simple_site)
    result = make_crawler(parser, clock, ignored=[r'http://b.*']).crawl(['http://a'])

    assert sorted(parser.trace) == ['http://a', 'http://c']
    assert result.urls_visited == 2


def test_fetch_failure_is_contained(simple_site, clock):
    parser = FakePageParser(simple_site, failing=['http://b'])
    crawler = make_crawler(parser, clock)
    result = crawler.crawl(['http://a'])

    # http://b was claimed, so it still counts as visited, but D is never reached
    assert sorted(parser.trace) == ['http://a', 'http://b', 'http://c']
    assert result.urls_visited == 3
    assert dict(result.word_counts) == {'apple': 3, 'banana': 1, 'cherry': 1}
    assert crawler.last_metrics.summary()['fetch_errors'] == 1


def test_failed_seed_still_reports_visit(clock):
    result = make_crawler(FakePageParser({}), clock).crawl(['http://missing'])

    assert result.urls_visited == 1
    assert dict(result.word_counts) == {}


def test_unexpected_error_aborts_crawl(clock):
    class BrokenParser(FakePageParser):
        def parse(self, url):
            raise KeyError(url)

    with pytest.raises(KeyError):
        make_crawler(BrokenParser({}), clock).crawl(['http://a'])


def test_parallelism_capped_by_host(simple_site, clock):
    crawler = make_crawler(FakePageParser(simple_site), clock, parallelism=10_000)
    assert crawler.parallelism == crawler.get_max_parallelism()
    assert crawler.get_max_parallelism() >= 1


def test_pages_fetched_on_multiple_threads(clock):
    urls = [f'http://p{i}' for i in range(12)]
    pages = {'http://root': page(urls)}
    pages.update({url: page([]) for url in urls})
    threads = set()

    class ThreadRecordingParser(FakePageParser):
        def parse(self, url):
            threads.add(threading.current_thread().name)
            return super().parse(url)

    parser = ThreadRecordingParser(pages, max_delay=0.02, seed=1)
    crawler = make_crawler(parser, clock, parallelism=4)
    if crawler.parallelism < 2:
        pytest.skip("host has a single CPU")
    crawler.crawl(['http://root'])

    assert len(threads) > 1
    assert all(name.startswith('crawl-worker') for name in threads)


def test_separate_crawls_do_not_share_state(simple_site, clock):
    crawler = make_crawler(FakePageParser(simple_site), clock)
    first = crawler.crawl(['http://a'])
    second = crawler.crawl(['http://a'])

    assert first.to_dict() == second.to_dict()
    assert second.urls_visited == 4


def test_metrics_count_duplicates_and_cutoffs(clock):
    pages = {
        'http://a': page(['http://b', 'http://b']),
        'http://b': page(['http://c']),
        'http://c': page([]),
    }
    crawler = make_crawler(FakePageParser(pages), clock, max_depth=2, parallelism=1)
    crawler.crawl(['http://a'])
    summary = crawler.last_metrics.summary()

    assert summary['pages_fetched'] == 2
    assert summary['duplicates_skipped'] == 1
    assert summary['depth_cutoffs'] == 1


def test_from_config(simple_site):
    config = CrawlerConfig(
        start_pages=['http://a'], ignored_urls=['http://c'], max_depth=3,
        timeout_seconds=30, popular_word_count=1, parallelism=2
    )
    crawler = ParallelWebCrawler.from_config(config, FakePageParser(simple_site))
    result = crawler.crawl(config.start_pages)

    assert result.urls_visited == 3
    assert dict(result.word_counts) == {'banana': 4}


def test_result_word_counts_are_read_only(simple_site, clock):
    result = make_crawler(FakePageParser(simple_site), clock).crawl(['http://a'])
    with pytest.raises(TypeError):
        result.word_counts['apple'] = 0


def test_parse_result_accepts_any_iterables():
    result = PageParseResult(links=['http://x'], word_counts={'a': 1})
    assert result.links == ('http://x',)


def test_deep_link_chain_is_crawled_to_the_end(clock):
    urls = [f'http://chain/{i}' for i in range(500)]
    pages = {url: page(urls[i + 1:i + 2], link=1) for i, url in enumerate(urls)}
    parser = FakePageParser(pages)

    result = make_crawler(parser, clock, max_depth=500, parallelism=1).crawl([urls[0]])

    assert result.urls_visited == 500
    assert dict(result.word_counts) == {'link': 500}
