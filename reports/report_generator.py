"""
Report generator for the pelada system.
"""

import os
import pandas as pd
import logging
from typing import Dict, List, Optional
from database.database_manager import DatabaseManager
from database.player_manager import PlayerManager
from database.history_manager import HistoryManager
from models.player import PlayerAggregate
from ranking.ranking_processor import Rankings

logger = logging.getLogger(__name__)

# Metric column shown for each leaderboard, after the common columns
LEADERBOARD_COLUMNS = {
    'goals': ['Goals', 'Assists', 'Matches'],
    'assists': ['Assists', 'Goals', 'Matches'],
    'ga': ['G+A', 'Goals', 'Assists', 'Matches'],
    'ratings': ['Rating', 'Matches'],
    'matches': ['Matches', 'Goals', 'Assists'],
    'photos': ['Photos', 'Matches'],
    'overall': ['Overall', 'Override', 'Rating', 'Goals', 'Assists', 'Matches'],
    'weighted': ['Score', 'Rating', 'Goals', 'Assists', 'Matches'],
    'recent': ['Score', 'Rating', 'Goals', 'Assists', 'Matches'],
}


def _entry_row(rank: int, entry: PlayerAggregate) -> Dict:
    return {
        'Rank': rank,
        'ID': entry.player.id,
        'Name': entry.player.name,
        'Nickname': entry.player.nickname or '',
        'Position': entry.player.position or '',
        'Group': entry.player.position_group.value,
        'Goals': entry.goals,
        'Assists': entry.assists,
        'G+A': entry.goals_assists,
        'Matches': entry.matches,
        'Photos': entry.photos,
        'Rating': round(entry.rating, 2),
        'Score': entry.score if entry.score is not None else '',
        'Overall': entry.overall if entry.overall is not None else '',
        'Override': 'yes' if entry.is_override else '',
    }


class ReportGenerator:
    """Generates CSV reports from rankings and overall history."""

    def __init__(self, database_manager: DatabaseManager, ranking_processor=None):
        self.db_manager = database_manager
        self.player_manager = PlayerManager(database_manager)
        self.history_manager = HistoryManager(database_manager)
        self.ranking_processor = ranking_processor

    def generate_leaderboard_report(self, rankings: Rankings, board: str, output_file: str) -> int:
        """
        Export one leaderboard ('goals', 'ratings', 'overall', ...) to CSV.
        Returns the number of players exported.
        """
        if board not in LEADERBOARD_COLUMNS:
            raise ValueError(f"Unknown leaderboard '{board}'")

        entries = rankings.leaderboards()[board]
        columns = ['Rank', 'ID', 'Name', 'Nickname', 'Position', 'Group'] + LEADERBOARD_COLUMNS[board]
        data = [_entry_row(i, entry) for i, entry in enumerate(entries, 1)]

        df = pd.DataFrame(data, columns=columns)
        df.to_csv(output_file, index=False, encoding='utf-8')

        logger.info(f"Exported {len(entries)} players of the {board} leaderboard to {output_file}")
        return len(entries)

    def generate_awards_report(self, rankings: Rankings, output_file: str) -> int:
        """Weekly and monthly award counts in one table."""
        data = []
        for kind, tallies in (('weekly', rankings.weekly_awards), ('monthly', rankings.monthly_awards)):
            for i, tally in enumerate(tallies, 1):
                data.append({
                    'Award': kind,
                    'Rank': i,
                    'ID': tally.player.id,
                    'Name': tally.player.name,
                    'Count': tally.count
                })

        df = pd.DataFrame(data, columns=['Award', 'Rank', 'ID', 'Name', 'Count'])
        df.to_csv(output_file, index=False, encoding='utf-8')

        logger.info(f"Exported {len(data)} award counts to {output_file}")
        return len(data)

    def generate_color_wins_report(self, rankings: Rankings, output_file: str) -> int:
        data = [{'Color': tally.color, 'Wins': tally.wins} for tally in rankings.color_wins]
        df = pd.DataFrame(data, columns=['Color', 'Wins'])
        df.to_csv(output_file, index=False, encoding='utf-8')
        return len(data)

    def generate_recent_matches_report(self, rankings: Rankings, output_file: str) -> int:
        data = [{
            'Match ID': match.id,
            'Played At': match.played_at.isoformat(),
            'Description': match.description or '',
            'Winner': match.winner_color or ''
        } for match in rankings.last10]
        df = pd.DataFrame(data, columns=['Match ID', 'Played At', 'Description', 'Winner'])
        df.to_csv(output_file, index=False, encoding='utf-8')
        return len(data)

    def generate_overall_history_report(self, output_file: str = "overall_history_report.csv",
                                        player_ids: Optional[List[int]] = None) -> int:
        """
        Export overall snapshots of the given players (all players when None).
        Returns the number of snapshot rows exported.
        """
        players = self.player_manager.get_players(player_ids)

        data = []
        for player in players:
            for row in self.history_manager.get_player_history(player.id):
                weights = row['weights'] or {}
                data.append({
                    'ID': player.id,
                    'Name': player.name,
                    'Window': row['window'],
                    'Overall': row['overall'],
                    'Goals': row['goals'],
                    'Assists': row['assists'],
                    'Matches': row['matches'],
                    'Rating': round(row['rating'], 2),
                    'Max Goals': row['max_goals'],
                    'Max Assists': row['max_assists'],
                    'Max Matches': row['max_matches'],
                    'Weight Rating': weights.get('rating', ''),
                    'Weight Goals': weights.get('goals', ''),
                    'Weight Assists': weights.get('assists', ''),
                    'Weight Presence': weights.get('presence', ''),
                    'Created At': row['created_at']
                })

        if not data:
            logger.warning("No overall history found for report generation")
            return 0

        df = pd.DataFrame(data)
        df.to_csv(output_file, index=False, encoding='utf-8')

        logger.info(f"Generated overall history report with {len(data)} rows: {output_file}")
        return len(data)

    def generate_statistics_report(self, output_file: str = "statistics_report.csv") -> int:
        """Row counts of every table plus player totals by position group."""
        data = [{'Category': 'Table', 'Subcategory': table, 'Count': count}
                for table, count in self.db_manager.get_database_stats().items()]

        group_counts: Dict[str, int] = {}
        for player in self.player_manager.get_players():
            group = player.position_group.value
            group_counts[group] = group_counts.get(group, 0) + 1
        for group, count in sorted(group_counts.items()):
            data.append({'Category': 'Position Group', 'Subcategory': group, 'Count': count})

        df = pd.DataFrame(data, columns=['Category', 'Subcategory', 'Count'])
        df.to_csv(output_file, index=False, encoding='utf-8')

        logger.info(f"Generated statistics report: {output_file}")
        return len(data)

    def generate_all_reports(self, output_directory: str = "reports_output",
                             rankings: Optional[Rankings] = None) -> Dict[str, int]:
        """Generate every report in the given directory; rankings default to the current year."""
        os.makedirs(output_directory, exist_ok=True)

        if rankings is None:
            if self.ranking_processor is None:
                raise ValueError("A ranking processor or precomputed rankings are required")
            rankings = self.ranking_processor.build_rankings_for_period()

        report_results = {}
        for board in LEADERBOARD_COLUMNS:
            report_file = os.path.join(output_directory, f"ranking_{board}.csv")
            report_results[board] = self.generate_leaderboard_report(rankings, board, report_file)

        report_results['awards'] = self.generate_awards_report(
            rankings, os.path.join(output_directory, "ranking_awards.csv"))
        report_results['color_wins'] = self.generate_color_wins_report(
            rankings, os.path.join(output_directory, "ranking_color_wins.csv"))
        report_results['last10'] = self.generate_recent_matches_report(
            rankings, os.path.join(output_directory, "ranking_last10.csv"))
        report_results['overall_history'] = self.generate_overall_history_report(
            os.path.join(output_directory, "overall_history_report.csv"))
        report_results['statistics'] = self.generate_statistics_report(
            os.path.join(output_directory, "statistics_report.csv"))

        logger.info(f"Generated all reports in directory: {output_directory}")
        return report_results
