"""
领域模型单元测试

测试项目文档的 camelCase 映射、缺省值处理和持久化 ID 解析。
"""
from researchflow.models.domain import (
    ChatMessageDocument,
    IdeaDocument,
    PlanDocument,
    ProjectDocument,
    SaveProjectResult,
)


class TestProjectDocument:
    """测试项目文档"""

    def test_defaults(self):
        """测试空文档的默认值"""
        document = ProjectDocument()
        assert document.metadata.title == ""
        assert document.metadata.current_tab == "plan"
        assert document.plan.ideas == []
        assert document.plan.custom_section_titles == {}
        assert document.write.content == ""
        assert document.edit.word_count == 0
        assert document.chat_history == []

    def test_camel_case_input(self, sample_document_payload):
        document = ProjectDocument.model_validate(sample_document_payload)
        assert document.metadata.current_tab == "write"
        assert document.metadata.instructor_instructions == "Use at least three sources."
        assert document.plan.ideas[1].section_id == "intro"
        assert document.plan.ideas[1].ai_generated is True
        assert document.plan.section_order == ["intro", "extra"]
        assert document.write.word_count == 2
        assert len(document.chat_history) == 2

    def test_camel_case_output(self, sample_document_payload):
        """测试序列化时使用 camelCase"""
        dumped = ProjectDocument.model_validate(sample_document_payload).model_dump(by_alias=True)
        assert "chatHistory" in dumped
        assert "currentTab" in dumped["metadata"]
        assert "customSectionTitles" in dumped["plan"]
        assert "sectionId" in dumped["plan"]["ideas"][0]

    def test_nulls_become_defaults(self):
        """测试 null 字段不会原样输出"""
        document = ProjectDocument.model_validate({
            "metadata": {"title": None, "currentTab": None},
            "plan": {"ideas": None, "customSectionTitles": []},
            "write": None,
            "chatHistory": None,
        })
        assert document.metadata.title == ""
        assert document.metadata.current_tab == "plan"
        assert document.plan.ideas == []
        assert document.plan.custom_section_titles == {}
        assert document.write.content == ""
        assert document.chat_history == []

    def test_phase_accessor(self):
        document = ProjectDocument.model_validate({"write": {"content": "w"}, "edit": {"content": "e"}})
        assert document.phase("write").content == "w"
        assert document.phase("edit").content == "e"


class TestIdeaDocument:
    """测试想法 ID 解析"""

    def test_integer_id(self):
        assert IdeaDocument(id=12, content="x").persisted_id() == 12

    def test_digit_string_id(self):
        """测试数字字符串视为持久化 ID"""
        assert IdeaDocument(id="12", content="x").persisted_id() == 12

    def test_temporary_id(self):
        assert IdeaDocument(id="tmp-1", content="x").persisted_id() == 0

    def test_missing_or_invalid_id(self):
        assert IdeaDocument(content="x").persisted_id() == 0
        assert IdeaDocument(id=0, content="x").persisted_id() == 0
        assert IdeaDocument(id=-3, content="x").persisted_id() == 0

    def test_empty_section_id_is_null(self):
        """测试空字符串 section_id 与 NULL 等价"""
        assert IdeaDocument(content="x", section_id="").section_id is None

    def test_empty_location_defaults_to_brainstorm(self):
        assert IdeaDocument(content="x", location="").location == "brainstorm"


class TestMiscModels:
    """测试其他模型"""

    def test_chat_message_empty_role(self):
        assert ChatMessageDocument(role="", content="hi").role is None

    def test_plan_outline_is_opaque(self):
        plan = PlanDocument(outline={"sections": [1, 2]})
        assert plan.outline == {"sections": [1, 2]}

    def test_save_result_alias(self):
        dumped = SaveProjectResult(idea_id_map={"tmp1": 5}).model_dump(by_alias=True)
        assert dumped == {"ok": True, "ideaIdMap": {"tmp1": 5}}
