import numpy as np
import pytest

from evoi.services.decision.distributions import NormalPrior, StudentTPrior, UniformPrior
from evoi.services.decision.errors import InvalidInputError
from evoi.services.decision.evpi import calculate_evpi
from evoi.services.decision.evsi import (
    calculate_evsi,
    calculate_evsi_monte_carlo,
    calculate_evsi_normal_fast_path,
    check_num_samples,
    posterior_means,
    truncated_normal_mean,
)
from evoi.services.decision.inputs import EVPIInputs, EVSIInputs
from evoi.services.decision.rules import Decision

K = 500_000
BASELINE = 0.05


def make_inputs(prior, n_per_arm=5_000, threshold_l=0.0):
    return EVSIInputs(
        k=K,
        baseline_conversion_rate=BASELINE,
        threshold_l=threshold_l,
        prior=prior,
        n_control=n_per_arm,
        n_variant=n_per_arm,
    )


def evpi_for(prior, threshold_l=0.0):
    return calculate_evpi(EVPIInputs(k=K, threshold_l=threshold_l, prior=prior)).evpi_dollars


class TestNormalFastPath:
    def test_bounded_by_evpi(self):
        prior = NormalPrior(mu=0.01, sigma=0.05)
        result = calculate_evsi_normal_fast_path(make_inputs(prior))

        assert result.method == "normal-fast-path"
        assert 0 <= result.evsi_dollars <= evpi_for(prior)
        assert result.default_decision == Decision.SHIP
        assert 0 < result.probability_test_changes_decision < 0.5

    def test_grows_with_sample_size(self):
        prior = NormalPrior(mu=0.01, sigma=0.05)
        values = [
            calculate_evsi_normal_fast_path(make_inputs(prior, n)).evsi_dollars
            for n in (1_000, 10_000, 100_000, 1_000_000)
        ]
        assert values == sorted(values)

    def test_converges_to_evpi(self):
        prior = NormalPrior(mu=0.01, sigma=0.05)
        result = calculate_evsi_normal_fast_path(make_inputs(prior, 1_000_000_000))
        assert result.evsi_dollars == pytest.approx(evpi_for(prior), rel=1e-3)

    def test_requires_normal_prior(self):
        with pytest.raises(InvalidInputError) as exc_info:
            calculate_evsi_normal_fast_path(make_inputs(UniformPrior(low=-0.1, high=0.1)))
        assert exc_info.value.field == "prior"

    def test_dispatch_uses_fast_path_for_normal(self):
        result = calculate_evsi(make_inputs(NormalPrior(mu=0.0, sigma=0.05)))
        assert result.method == "normal-fast-path"
        assert result.num_samples == 0
        assert result.monte_carlo_se is None


class TestMonteCarlo:
    def test_agrees_with_fast_path_for_normal(self):
        prior = NormalPrior(mu=0.01, sigma=0.05)
        inputs = make_inputs(prior, 50_000)

        exact = calculate_evsi_normal_fast_path(inputs)
        simulated = calculate_evsi_monte_carlo(inputs, num_samples=200_000, seed=42)

        assert simulated.method == "monte-carlo"
        assert simulated.evsi_dollars == pytest.approx(exact.evsi_dollars, rel=0.02)
        assert simulated.probability_test_changes_decision == pytest.approx(
            exact.probability_test_changes_decision, abs=0.01
        )

    def test_seed_makes_runs_reproducible(self):
        inputs = make_inputs(StudentTPrior(mu=0.01, sigma=0.03, df=5), 20_000)
        first = calculate_evsi_monte_carlo(inputs, num_samples=2_000, seed=7)
        second = calculate_evsi_monte_carlo(inputs, num_samples=2_000, seed=7)
        assert first == second

    @pytest.mark.parametrize(
        "prior",
        [
            StudentTPrior(mu=0.01, sigma=0.03, df=3),
            StudentTPrior(mu=-0.01, sigma=0.04, df=10),
            UniformPrior(low=-0.08, high=0.1),
        ],
    )
    def test_bounded_by_evpi(self, prior):
        result = calculate_evsi(make_inputs(prior, 20_000), num_samples=20_000, seed=1)

        assert result.method == "monte-carlo"
        assert result.num_samples == 20_000
        assert 0 <= result.evsi_dollars <= evpi_for(prior)
        assert result.monte_carlo_se > 0
        assert result.raw_evsi_dollars is not None

    def test_more_traffic_is_worth_more(self):
        prior = StudentTPrior(mu=0.0, sigma=0.03, df=5)
        small = calculate_evsi(make_inputs(prior, 1_000), num_samples=20_000, seed=5)
        large = calculate_evsi(make_inputs(prior, 200_000), num_samples=20_000, seed=5)
        assert large.evsi_dollars > small.evsi_dollars

    def test_rare_events_warning(self):
        result = calculate_evsi(make_inputs(UniformPrior(low=-0.1, high=0.1), 100), num_samples=1_000, seed=3)
        assert "rare_events" in [w.code for w in result.warnings]

    def test_high_rejection_warning(self):
        result = calculate_evsi(make_inputs(UniformPrior(low=-1.5, high=0.5), 10_000), num_samples=1_000, seed=3)

        assert result.infeasible_prior_mass == pytest.approx(0.25)
        assert "high_rejection" in [w.code for w in result.warnings]

    def test_no_warnings_for_healthy_design(self):
        result = calculate_evsi(make_inputs(UniformPrior(low=-0.1, high=0.1), 10_000), num_samples=1_000, seed=3)
        assert result.warnings == []

    @pytest.mark.parametrize("num_samples", [0, 1, 2.5, True])
    def test_rejects_bad_sample_counts(self, num_samples):
        with pytest.raises(InvalidInputError) as exc_info:
            check_num_samples(num_samples)
        assert exc_info.value.field == "num_samples"


class TestPosteriorMeans:
    def test_normal_shrinkage(self):
        prior = NormalPrior(mu=0.02, sigma=0.05)
        means = posterior_means(np.array([0.1]), 0.05, prior, BASELINE)
        assert means[0] == pytest.approx(0.06)

    def test_uniform_centre(self):
        means = posterior_means(np.array([0.0]), 0.01, UniformPrior(low=-0.1, high=0.1), BASELINE)
        assert means[0] == pytest.approx(0.0, abs=1e-12)

    def test_uniform_stays_inside_support(self):
        means = posterior_means(np.array([-5.0, 5.0]), 0.01, UniformPrior(low=-0.1, high=0.1), BASELINE)
        np.testing.assert_allclose(means, [-0.1, 0.1])

    def test_student_t_follows_precise_data(self):
        prior = StudentTPrior(mu=0.0, sigma=0.05, df=5)
        means = posterior_means(np.array([0.02]), 0.01, prior, BASELINE)
        assert means[0] == pytest.approx(0.02, abs=0.002)

    def test_student_t_ignores_noisy_data(self):
        prior = StudentTPrior(mu=0.0, sigma=0.05, df=5)
        means = posterior_means(np.array([0.3]), 10.0, prior, BASELINE)
        assert means[0] == pytest.approx(0.0, abs=1e-3)

    def test_student_t_outside_feasible_range(self):
        prior = StudentTPrior(mu=-5.0, sigma=0.1, df=3)
        means = posterior_means(np.array([0.0, 1.0]), 0.05, prior, BASELINE)
        np.testing.assert_allclose(means, [-1.0, -1.0])


class TestTruncatedNormalMean:
    def test_symmetric_window(self):
        assert truncated_normal_mean(np.array([0.0]), 1.0, -1.0, 1.0)[0] == pytest.approx(0.0, abs=1e-12)

    def test_one_sided_window(self):
        # Half-normal mean is sqrt(2 / pi)
        result = truncated_normal_mean(np.array([0.0]), 1.0, 0.0, 50.0)[0]
        assert result == pytest.approx(np.sqrt(2 / np.pi), rel=1e-9)

    def test_degenerate_window_snaps_to_bound(self):
        result = truncated_normal_mean(np.array([10.0, -10.0]), 1.0, 0.0, 1.0)
        np.testing.assert_allclose(result, [1.0, 0.0])


class TestTruncationFlag:
    def test_fast_path_flags_mass_below_floor(self):
        result = calculate_evsi_normal_fast_path(make_inputs(NormalPrior(mu=-0.9, sigma=0.5)))
        assert result.truncation_significant is True

    def test_monte_carlo_flags_mass_below_floor(self):
        result = calculate_evsi_monte_carlo(make_inputs(NormalPrior(mu=-0.9, sigma=0.5)), num_samples=2_000, seed=1)
        assert result.truncation_significant is True
        assert result.infeasible_prior_mass > 0.4

    def test_narrow_prior_is_not_flagged(self):
        inputs = make_inputs(NormalPrior(mu=0.0, sigma=0.05))
        assert calculate_evsi_normal_fast_path(inputs).truncation_significant is False
        assert calculate_evsi_monte_carlo(inputs, num_samples=2_000, seed=1).truncation_significant is False
