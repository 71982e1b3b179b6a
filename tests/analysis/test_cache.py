# test_cache.py
# 分析结果缓存测试：指纹稳定性、TTL 与返回副本

from crscheck.analysis.cache import AnalysisCache, fingerprint
from crscheck.analysis.normalizer import build_default_result
from crscheck.prompts.models import AnswerItem


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


class TestFingerprint:
    def test_order_insensitive(self):
        """答案顺序与多选顺序不影响指纹。"""
        a = [AnswerItem("q1", "x"), AnswerItem("q2", ["b", "a"])]
        b = [AnswerItem("q2", ["a", "b"]), AnswerItem("q1", "x")]
        assert fingerprint("bank_crs_01", a) == fingerprint("bank_crs_01", b)

    def test_different_answers_differ(self):
        """答案不同则指纹不同。"""
        a = [AnswerItem("q1", "x")]
        b = [AnswerItem("q1", "y")]
        assert fingerprint("bank_crs_01", a) != fingerprint("bank_crs_01", b)

    def test_long_answer_sets_do_not_collide(self):
        """仅末尾题目不同的两组长答案不冲突。"""
        base = [AnswerItem(f"q{i}", "same") for i in range(20)]
        a = base + [AnswerItem("q99", "first")]
        b = base + [AnswerItem("q99", "second")]
        assert fingerprint("s", a) != fingerprint("s", b)

    def test_survey_id_prefix(self):
        """指纹以问卷 ID 开头。"""
        key = fingerprint("bank_crs_01", [AnswerItem("q1", "x")])
        assert key.startswith("bank_crs_01_")


class TestAnalysisCache:
    def test_hit_within_ttl(self):
        """TTL 内命中，返回与写入相等的结果。"""
        clock = FakeClock()
        cache = AnalysisCache(ttl_seconds=300, clock=clock)
        result = build_default_result()
        cache.put("k", result)

        clock.now += 299
        assert cache.get("k") == result
        assert "k" in cache

    def test_miss_after_ttl(self):
        """到达 TTL 即失效。"""
        clock = FakeClock()
        cache = AnalysisCache(ttl_seconds=300, clock=clock)
        cache.put("k", build_default_result())

        clock.now += 300
        assert cache.get("k") is None

    def test_mutating_returned_result_does_not_affect_cache(self):
        """修改 get 返回的结果不影响后续命中。"""
        cache = AnalysisCache(clock=FakeClock())
        cache.put("k", build_default_result())

        first = cache.get("k")
        first.overall_risk_level = 99
        first.radar_scores["金融账户穿透风险"] = 1
        first.detailed_analysis.recommendations.append("篡改")

        second = cache.get("k")
        assert second == build_default_result()
        assert second is not first

    def test_mutating_stored_result_does_not_affect_cache(self):
        """写入后修改原对象不影响缓存内容。"""
        cache = AnalysisCache(clock=FakeClock())
        result = build_default_result()
        cache.put("k", result)

        result.detailed_analysis.recommendations.clear()

        assert cache.get("k") == build_default_result()

    def test_expired_entries_swept_on_write(self):
        """写入时顺带清理过期条目。"""
        clock = FakeClock()
        cache = AnalysisCache(ttl_seconds=10, clock=clock)
        cache.put("old", build_default_result())
        clock.now += 11
        cache.put("new", build_default_result())
        assert len(cache) == 1
        assert cache.get("new") is not None

    def test_sweep_returns_removed_count(self):
        """sweep 返回删除的条目数。"""
        clock = FakeClock()
        cache = AnalysisCache(ttl_seconds=10, clock=clock)
        cache.put("a", build_default_result())
        cache.put("b", build_default_result())
        clock.now += 10
        assert cache.sweep() == 2
        assert len(cache) == 0

    def test_max_entries_evicts_oldest(self):
        """超出上限时淘汰最早写入的条目。"""
        cache = AnalysisCache(max_entries=2, clock=FakeClock())
        for key in ("a", "b", "c"):
            cache.put(key, build_default_result())
        assert "a" not in cache
        assert "b" in cache and "c" in cache

    def test_clear(self):
        """clear 清空全部条目。"""
        cache = AnalysisCache(clock=FakeClock())
        cache.put("a", build_default_result())
        cache.clear()
        assert len(cache) == 0
