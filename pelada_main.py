"""
Main application for the pelada system: runs the batch jobs and exports the rankings.
"""

import argparse
import logging
import sys

from achievements.achievement_evaluator import AchievementEvaluator
from config.config_manager import ConfigManager
from database.database_manager import DatabaseManager
from database.player_manager import PlayerManager
from database.history_manager import HistoryManager
from database.award_manager import AwardManager
from database.achievement_manager import AchievementManager
from ranking.ranking_processor import RankingProcessor
from rating.overall import OverallRecalculator
from reports.report_generator import ReportGenerator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main(config_file: str = "config.yaml", year: str = None, month: str = None,
         position: str = None, output_directory: str = "reports_output") -> None:
    """Main application entry point."""
    try:
        logger.info("Starting pelada system...")

        config = ConfigManager.load_config(config_file)
        db_path = config.get('database_path', 'pelada.db')

        # Initialize database manager
        db_manager = DatabaseManager(db_path, config_file)
        logger.info("Database manager initialized")

        # Initialize managers
        player_manager = PlayerManager(db_manager)
        history_manager = HistoryManager(db_manager)
        award_manager = AwardManager(db_manager)
        achievement_manager = AchievementManager(db_manager)
        ranking_processor = RankingProcessor(db_path, config_file)
        report_generator = ReportGenerator(db_manager, ranking_processor)

        logger.info("All managers initialized")

        achievement_manager.seed_catalog()
        player_manager.recompute_totals()
        award_manager.backfill_weekly_awards()

        snapshots = OverallRecalculator(player_manager, history_manager).recalculate()
        logger.info(f"Overall recalculated for {snapshots} players")

        unlocks = AchievementEvaluator(db_manager).evaluate_all_players()
        logger.info(f"New achievement unlocks: {sum(len(u) for u in unlocks.values())}")

        stats = db_manager.get_database_stats()
        logger.info(f"Database statistics: {stats}")

        logger.info("Generating reports...")
        rankings = ranking_processor.build_rankings_for_period(year, month, position)
        report_results = report_generator.generate_all_reports(output_directory, rankings)
        logger.info(f"Generated reports: {report_results}")

        logger.info("Pelada system completed successfully")

    except Exception as e:
        logger.error(f"Error in pelada system: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Recompute pelada ratings and export rankings")
    parser.add_argument('--config', default='config.yaml', help='YAML configuration file')
    parser.add_argument('--year', default=None, help='Year to rank, or "all" (default: current year)')
    parser.add_argument('--month', default=None, help='Month 1-12; omit for the whole year')
    parser.add_argument('--position', default=None, help='Position group or label to filter by')
    parser.add_argument('--output', default='reports_output', help='Directory for the CSV reports')
    args = parser.parse_args()

    main(args.config, args.year, args.month, args.position, args.output)
