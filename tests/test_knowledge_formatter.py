"""Tests for the Markdown knowledge context."""


class TestFormatCharacters:
    def test_relationships_rendered_by_name(self, sample_characters):
        from memory.knowledge_formatter import format_characters
        text = format_characters(sample_characters)
        assert "- 人物关系:" in text
        assert "  - 沈夜 (宿敌)" in text

    def test_dangling_relationship_skipped(self):
        from memory.knowledge_formatter import format_characters
        from models.character import Character, Relationship
        roster = [
            Character(
                id="char_1",
                name="林澈",
                relationships=[
                    Relationship(target_char_id="char_9", type="师父"),
                    Relationship(target_char_id="char_2", type="挚友", description="同窗十年"),
                ],
            ),
            Character(id="char_2", name="苏晚"),
        ]
        text = format_characters(roster)
        assert "  - 苏晚 (挚友): 同窗十年" in text
        assert "师父" not in text
        assert "char_9" not in text

    def test_no_relationship_section_when_all_dangling(self):
        from memory.knowledge_formatter import format_characters
        from models.character import Character, Relationship
        roster = [Character(id="char_1", name="林澈", relationships=[Relationship(target_char_id="ghost")])]
        assert "人物关系" not in format_characters(roster)


class TestBuildKnowledgeContext:
    def test_sections_joined(self, sample_world, sample_characters, sample_outline):
        from memory.knowledge_formatter import SECTION_SEPARATOR, build_knowledge_context
        context = build_knowledge_context(sample_world, sample_characters, sample_outline)
        assert context.count(SECTION_SEPARATOR) == 2
        assert "## 世界观设定" in context
        assert "## 角色档案" in context
        assert "## 大纲结构" in context
