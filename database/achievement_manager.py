"""
Achievement catalog and per-player progress management for the pelada database.
"""

import sqlite3
import logging
from typing import List, Optional, Dict, Any
from models.achievement import Achievement, PlayerAchievement
from models.player import PositionGroup

logger = logging.getLogger(__name__)

# Metric names understood by the achievement evaluator
METRIC_GOALS = 'goals'
METRIC_ASSISTS = 'assists'
METRIC_PRESENCE = 'presence'
METRIC_AVG_RATING = 'avg_rating'
METRIC_RATINGS_AT_LEAST_8 = 'ratings_at_least_8'
METRIC_RATINGS_AT_LEAST_9 = 'ratings_at_least_9'
METRIC_HAS_PERFECT_RATING = 'has_perfect_rating'
METRIC_WEEKLY_AWARDS = 'weekly_awards'
METRIC_MONTHLY_AWARDS = 'monthly_awards'

DEFENDER = PositionGroup.DEFENDER.value


def _numeric(slug, name, description, category, metric, target, required_position=None):
    return {
        'slug': slug, 'name': name, 'description': description, 'category': category,
        'metric': metric, 'target': target, 'is_numeric': True,
        'required_position': required_position
    }


def _manual(slug, name, description, category, required_position=None):
    return {
        'slug': slug, 'name': name, 'description': description, 'category': category,
        'metric': None, 'target': 0, 'is_numeric': False,
        'required_position': required_position
    }


ACHIEVEMENT_CATALOG: List[Dict[str, Any]] = [
    # Gols
    _numeric('gols_10', 'Pé na Forma', '10 gols', 'gols', METRIC_GOALS, 10),
    _numeric('gols_25', 'Artilheiro de Bairro', '25 gols', 'gols', METRIC_GOALS, 25),
    _numeric('gols_50', 'Matador', '50 gols', 'gols', METRIC_GOALS, 50),
    _numeric('gols_75', 'Camisa 9 de Ouro', '75 gols', 'gols', METRIC_GOALS, 75),
    _numeric('gols_100', 'Lenda do Gol', '100 gols', 'gols', METRIC_GOALS, 100),
    _numeric('gols_150', 'Canhão Humano', '150 gols', 'gols', METRIC_GOALS, 150),
    _numeric('gols_250', 'Imortal da Pelada', '250 gols', 'gols', METRIC_GOALS, 250),
    _numeric('gols_500', 'Recordista Mundial', '500 gols', 'gols', METRIC_GOALS, 500),

    # Assistências
    _numeric('ast_10', 'Garçom', '10 assistências', 'assistencias', METRIC_ASSISTS, 10),
    _numeric('ast_25', 'Prato Principal', '25 assistências', 'assistencias', METRIC_ASSISTS, 25),
    _numeric('ast_50', 'Mestre das Assistências', '50 assistências', 'assistencias', METRIC_ASSISTS, 50),
    _numeric('ast_75', 'Maestro', '75 assistências', 'assistencias', METRIC_ASSISTS, 75),
    _numeric('ast_100', 'Gênio do Último Passe', '100 assistências', 'assistencias', METRIC_ASSISTS, 100),
    _numeric('ast_150', 'Lenda dos Cruzamentos', '150 assistências', 'assistencias', METRIC_ASSISTS, 150),
    _numeric('ast_200', 'O Xavi da Pelada', '200 assistências', 'assistencias', METRIC_ASSISTS, 200),

    # Zagueiro: presence and goals count only while the player is a defender
    _numeric('zag_pres_20', 'Basalto', '20 jogos como zagueiro', 'zagueiro',
             METRIC_PRESENCE, 20, DEFENDER),
    _numeric('zag_pres_40', 'Titular Absoluto', '40 jogos como zagueiro', 'zagueiro',
             METRIC_PRESENCE, 40, DEFENDER),
    _numeric('zag_pres_75', 'O Xerifão', '75 jogos como zagueiro', 'zagueiro',
             METRIC_PRESENCE, 75, DEFENDER),
    _numeric('zag_pres_120', 'Lenda da Retaguarda', '120 jogos como zagueiro', 'zagueiro',
             METRIC_PRESENCE, 120, DEFENDER),
    _numeric('zag_gol_1', 'Subiu e Guardou', '1 gol como zagueiro', 'zagueiro',
             METRIC_GOALS, 1, DEFENDER),
    _numeric('zag_gol_5', 'Zagueiro Artilheiro', '5 gols como zagueiro', 'zagueiro',
             METRIC_GOALS, 5, DEFENDER),
    _manual('zag_notas_5x7', 'Seguro e Simples', '5 notas ≥ 7 como zagueiro', 'zagueiro', DEFENDER),
    _manual('zag_notas_10x8', 'Paredão', '10 notas ≥ 8 como zagueiro', 'zagueiro', DEFENDER),
    _manual('zag_notas_5x9', 'Zagueiro de Seleção', '5 notas ≥ 9 como zagueiro', 'zagueiro', DEFENDER),
    _manual('zag_nota_top', 'Craque Invisível', 'Melhor nota da pelada como zagueiro', 'zagueiro', DEFENDER),
    _manual('zag_media_75', 'O Monstro da Defesa', 'Média ≥ 7.5 na temporada', 'zagueiro', DEFENDER),
    _manual('zag_gol_duplo', 'Inesperado', '2 gols na mesma pelada (zagueiro)', 'zagueiro', DEFENDER),
    _manual('zag_vandijk', 'Van Dijk Mode', 'Gol + melhor da pelada como zagueiro', 'zagueiro', DEFENDER),
    _manual('zag_semana', 'Zagueiro da Semana', 'Craque da semana na zaga', 'zagueiro', DEFENDER),
    _manual('zag_mes', 'Zagueiro do Mês', 'Craque do mês na zaga', 'zagueiro', DEFENDER),
    _manual('zag_top3', 'Xerife da Temporada', 'Top 3 geral na temporada', 'zagueiro', DEFENDER),
    _manual('zag_3meses', 'Domínio da Zaga', '3 craques do mês como zagueiro', 'zagueiro', DEFENDER),
    _manual('zag_20_sem_6', 'O Inabalável da Defesa', '20 jogos seguidos sem nota < 6', 'zagueiro', DEFENDER),
    _manual('zag_10_com_7', 'A Muralha Humana', '10 jogos seguidos com nota ≥ 7', 'zagueiro', DEFENDER),
    _manual('zag_beckenbauer', 'Beckenbauer do Campo',
            'Média ≥ 7.5 + top 10 em gols/assistências atuando como zagueiro', 'zagueiro', DEFENDER),

    # Presença
    _numeric('presenca_20', 'Nunca Falta', '20 presenças', 'presenca', METRIC_PRESENCE, 20),
    _numeric('presenca_50', 'Vivo no Campo', '50 presenças', 'presenca', METRIC_PRESENCE, 50),
    _numeric('presenca_100', 'Morador da Terça', '100 presenças', 'presenca', METRIC_PRESENCE, 100),
    _numeric('presenca_150', 'Contrato Vitalício', '150 presenças', 'presenca', METRIC_PRESENCE, 150),
    _numeric('presenca_200', 'Se Me Procurar, Tô na Pelada', '200 presenças', 'presenca',
             METRIC_PRESENCE, 200),

    # Notas
    _numeric('nota_media_6', 'Regularzão', 'Média ≥ 6.0', 'notas', METRIC_AVG_RATING, 6.0),
    _numeric('nota_media_7', 'Batedor de Carteira', 'Média ≥ 7.0', 'notas', METRIC_AVG_RATING, 7.0),
    _numeric('nota_10x8', 'Craque do Jogo', '10 notas ≥ 8', 'notas', METRIC_RATINGS_AT_LEAST_8, 10),
    _numeric('nota_25x9', 'Monstro Sagrado', '25 notas ≥ 9', 'notas', METRIC_RATINGS_AT_LEAST_9, 25),
    _numeric('nota_10', 'Nota Messi', 'Uma nota 10', 'notas', METRIC_HAS_PERFECT_RATING, 1),

    # Premiações
    _numeric('premio_craque_semana_1', 'Craque da Semana', '1 vez craque da semana', 'premios',
             METRIC_WEEKLY_AWARDS, 1),
    _numeric('premio_craque_semana_5', 'Bicho Papão da Semana', '5 vezes craque da semana', 'premios',
             METRIC_WEEKLY_AWARDS, 5),
    _numeric('premio_craque_mes_1', 'Craque do Mês', '1 vez craque do mês', 'premios',
             METRIC_MONTHLY_AWARDS, 1),
    _numeric('premio_craque_mes_3', 'MVP Mensal', '3 vezes craque do mês', 'premios',
             METRIC_MONTHLY_AWARDS, 3),
    _numeric('premio_craque_mes_10', 'Rei das Terças', '10 prêmios mensais', 'premios',
             METRIC_MONTHLY_AWARDS, 10),
    _numeric('premio_craque_mes_20', 'O Messi da Resenha', '20 prêmios mensais', 'premios',
             METRIC_MONTHLY_AWARDS, 20),
]


class AchievementManager:
    """Manages the achievement catalog and player_achievements rows."""

    def __init__(self, database_manager):
        self.db_manager = database_manager

    def seed_catalog(self, catalog: Optional[List[Dict[str, Any]]] = None) -> int:
        """Insert or refresh every catalog entry by slug. Returns the number of entries seeded."""
        entries = catalog if catalog is not None else ACHIEVEMENT_CATALOG
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            for entry in entries:
                cursor.execute("""
                    INSERT INTO achievements
                        (slug, name, description, category, metric, target, is_numeric, required_position)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT (slug) DO UPDATE SET
                        name = excluded.name,
                        description = excluded.description,
                        category = excluded.category,
                        metric = excluded.metric,
                        target = excluded.target,
                        is_numeric = excluded.is_numeric,
                        required_position = excluded.required_position
                """, (entry['slug'], entry['name'], entry.get('description'), entry['category'],
                      entry.get('metric'), entry.get('target', 0), int(entry.get('is_numeric', True)),
                      entry.get('required_position')))
            conn.commit()

        logger.info(f"Seeded {len(entries)} achievements")
        return len(entries)

    def get_achievements(self) -> List[Achievement]:
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT id, slug, name, category, metric, target, is_numeric, required_position, description
                FROM achievements ORDER BY category, target, slug
            """)
            return [
                Achievement(id=row[0], slug=row[1], name=row[2], category=row[3], metric=row[4],
                            target=row[5], is_numeric=bool(row[6]), required_position=row[7],
                            description=row[8])
                for row in cursor.fetchall()
            ]

    def get_player_achievements(self, player_id: int) -> Dict[int, PlayerAchievement]:
        """Existing progress rows of a player keyed by achievement id."""
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT achievement_id, progress, unlocked_at
                FROM player_achievements WHERE player_id = ?
            """, (player_id,))
            return {
                row[0]: PlayerAchievement(player_id=player_id, achievement_id=row[0],
                                          progress=row[1], unlocked_at=row[2])
                for row in cursor.fetchall()
            }

    def save_player_progress(self, player_id: int, rows: List[PlayerAchievement]) -> None:
        """Upsert a player's progress rows in one transaction."""
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.executemany("""
                INSERT INTO player_achievements (player_id, achievement_id, progress, unlocked_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (player_id, achievement_id) DO UPDATE SET
                    progress = excluded.progress,
                    unlocked_at = excluded.unlocked_at,
                    updated_at = CURRENT_TIMESTAMP
            """, [(player_id, row.achievement_id, row.progress, row.unlocked_at) for row in rows])
            conn.commit()

    def grant_manual(self, player_id: int, slug: str, unlocked_at: str) -> bool:
        """Unlock an achievement by hand (the only way non-numeric achievements are unlocked)."""
        with sqlite3.connect(self.db_manager.db_path) as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT id FROM achievements WHERE slug = ?", (slug,))
            row = cursor.fetchone()
            if row is None:
                logger.warning(f"Unknown achievement slug {slug}")
                return False
            cursor.execute("""
                INSERT INTO player_achievements (player_id, achievement_id, progress, unlocked_at)
                VALUES (?, ?, 0, ?)
                ON CONFLICT (player_id, achievement_id) DO UPDATE SET
                    unlocked_at = excluded.unlocked_at,
                    updated_at = CURRENT_TIMESTAMP
            """, (player_id, row[0], unlocked_at))
            conn.commit()
            return True
