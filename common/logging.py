def log_recommendation_config(logger, config):
    logger.info("=" * 80)
    logger.info("RECOMMENDATION ENGINE CONFIGURATION")
    logger.info("=" * 80)
    logger.info("Algorithms (weights are multiplicative, not renormalized):")
    for name, algo in config["algorithms"].items():
        extras = {k: v for k, v in algo.items() if k not in ("enabled", "weight")}
        status = "on " if algo["enabled"] else "off"
        logger.info(f"  {name:<15} [{status}] weight={algo['weight']:.2f} {extras if extras else ''}")

    weight_sum = sum(a["weight"] for a in config["algorithms"].values() if a["enabled"])
    if weight_sum > 1.0:
        logger.info(f"  Enabled weights sum to {weight_sum:.2f}; hybrid scores may exceed 1.0")

    caching = config["caching"]
    logger.info(f"Caching: enabled={caching['enabled']} ttl={caching['ttl']}s max_size={caching['max_size']}")

    fallback = config["fallback"]
    logger.info(
        f"Fallback: use_popular={fallback['use_popular']} use_random={fallback['use_random']} "
        f"min_recommendations={fallback['min_recommendations']}"
    )

    rerank = config["rerank"]
    if rerank["diversity_weight"] or rerank["recency_weight"]:
        logger.info(f"Re-ranking: diversity={rerank['diversity_weight']} recency={rerank['recency_weight']}")


def log_response_summary(logger, response):
    metadata = response["metadata"]
    recs = response["recommendations"]
    logger.info(
        f"Returned {len(recs)}/{metadata['total_count']} recommendations "
        f"algorithm={metadata['algorithm']} cache_hit={metadata['cache_hit']} "
        f"fallback={metadata['fallback']} in {metadata['execution_time']:.1f}ms"
    )
    if recs:
        logger.info(f"  → top scores: {[round(r['score'], 4) for r in recs[:3]]}")
        logger.info(f"  → sources: {sorted({r['algorithm'] for r in recs})}")
